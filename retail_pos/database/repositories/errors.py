# database/repositories/errors.py


class DomainError(Exception):
    """Domain-level error the controller/UI can surface (toast/snackbar)."""
    pass


class StoreContextError(DomainError):
    """No store is selected, so store-scoped data cannot be written."""
    pass


class InsufficientStockError(DomainError):
    """A stock decrement would take a product below zero."""
    pass
