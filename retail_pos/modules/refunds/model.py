from PySide6.QtCore import QAbstractTableModel, Qt, QModelIndex

from ...database.repositories.refunds_repo import RefundRecord
from ...utils.helpers import fmt_money
from .eligibility import RefundableLine


class RefundableItemsModel(QAbstractTableModel):
    """Lines of the selected invoice with what is left to refund; Return is editable."""

    HEADERS = ["Product", "Purchased", "Refunded", "Remaining", "Unit Paid", "Return"]

    def __init__(self, lines: list[RefundableLine], quantities: dict[int, int] | None = None):
        super().__init__()
        self._rows = lines
        self._qty = quantities if quantities is not None else {}

    def rowCount(self, parent=QModelIndex()):
        return 0 if parent.isValid() else len(self._rows)

    def columnCount(self, parent=QModelIndex()):
        return 0 if parent.isValid() else len(self.HEADERS)

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid():
            return None
        ln = self._rows[index.row()]
        c = index.column()
        if role in (Qt.DisplayRole, Qt.EditRole):
            mapping = [
                ln.name,
                ln.purchased_qty,
                ln.refunded_qty,
                ln.remaining_qty,
                fmt_money(ln.unit_price),
                self._qty.get(ln.product_id, 0),
            ]
            return mapping[c]
        if role == Qt.TextAlignmentRole and c > 0:
            return Qt.AlignRight | Qt.AlignVCenter
        return None

    def flags(self, index):
        if not index.isValid():
            return Qt.ItemIsEnabled
        f = Qt.ItemIsEnabled | Qt.ItemIsSelectable
        ln = self._rows[index.row()]
        if index.column() == 5 and ln.remaining_qty > 0:
            f |= Qt.ItemIsEditable
        return f

    def setData(self, index, value, role=Qt.EditRole):
        if not index.isValid() or role != Qt.EditRole or index.column() != 5:
            return False
        ln = self._rows[index.row()]
        try:
            qty = int(value)
        except (TypeError, ValueError):
            return False
        qty = min(max(qty, 0), ln.remaining_qty)
        if qty:
            self._qty[ln.product_id] = qty
        else:
            self._qty.pop(ln.product_id, None)
        self.dataChanged.emit(index, index, [Qt.DisplayRole, Qt.EditRole])
        return True

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if orientation == Qt.Horizontal and role == Qt.DisplayRole:
            return self.HEADERS[section] if section < len(self.HEADERS) else None
        return super().headerData(section, orientation, role)

    def at(self, row: int) -> RefundableLine:
        return self._rows[row]

    def quantities(self) -> dict[int, int]:
        return dict(self._qty)

    def replace(self, lines: list[RefundableLine], quantities: dict[int, int] | None = None):
        self.beginResetModel()
        self._rows = lines
        self._qty = quantities if quantities is not None else {}
        self.endResetModel()


class RefundHistoryModel(QAbstractTableModel):
    HEADERS = ["Refund #", "Date", "Invoice", "Type", "Method", "Amount"]

    def __init__(self, rows: list[RefundRecord]):
        super().__init__()
        self._rows = rows

    def rowCount(self, parent=QModelIndex()):
        return 0 if parent.isValid() else len(self._rows)

    def columnCount(self, parent=QModelIndex()):
        return 0 if parent.isValid() else len(self.HEADERS)

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid():
            return None
        r = self._rows[index.row()]
        if role in (Qt.DisplayRole, Qt.EditRole):
            mapping = [
                r.refund_id,
                r.created_at[:10],
                r.invoice_number,
                r.refund_type.replace("_", " ").title(),
                r.refund_method,
                fmt_money(r.total_refund),
            ]
            return mapping[index.column()]
        return None

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if orientation == Qt.Horizontal and role == Qt.DisplayRole:
            return self.HEADERS[section] if section < len(self.HEADERS) else None
        return super().headerData(section, orientation, role)

    def at(self, row: int) -> RefundRecord:
        return self._rows[row]

    def replace(self, rows: list[RefundRecord]):
        self.beginResetModel()
        self._rows = rows
        self.endResetModel()
