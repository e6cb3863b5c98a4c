# utils/validators.py

def non_empty(text: str) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text and str(text).strip())


# ---- Numeric parsing & validators ----

def try_parse_float(x):
    """
    Best-effort parse to float.

    Returns:
        (ok: bool, value: float|None)
    """
    try:
        return True, float(x)
    except (TypeError, ValueError):
        return False, None


def parse_float(x) -> float:
    """
    Strict parse to float; raises ValueError with a clear message on failure.
    """
    ok, val = try_parse_float(x)
    if not ok:
        raise ValueError(f"Could not parse '{x}' as a number.")
    return val  # type: ignore[return-value]


def is_non_negative_number(x) -> bool:
    """
    True iff x parses to a float and value >= 0.
    """
    ok, val = try_parse_float(x)
    return bool(ok and val is not None and val >= 0)


def parse_quantity(x) -> int:
    """
    Parse a unit quantity. Negative input is treated as 0 (callers clamp);
    fractional quantities are rejected because stock moves in whole units.
    """
    val = parse_float(x)
    if val != val or val in (float("inf"), float("-inf")):
        raise ValueError(f"Quantity must be a finite number, got {x!r}.")
    if val < 0:
        return 0
    if val != int(val):
        raise ValueError(f"Quantity must be a whole number, got {x!r}.")
    return int(val)
