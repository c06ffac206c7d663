# bizadmin/utils/validators.py

def non_empty(text) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text is not None and str(text).strip())


# ---- Numeric parsing & validators ----

def try_parse_float(x):
    """
    Best-effort parse to float.

    Returns:
        (ok: bool, value: float|None)
    """
    if isinstance(x, bool):
        return False, None
    try:
        return True, float(x)
    except (TypeError, ValueError):
        return False, None


def is_non_negative_number(x) -> bool:
    """
    True iff x parses to a float and value >= 0.
    """
    ok, val = try_parse_float(x)
    return bool(ok and val is not None and val >= 0)


def is_strictly_positive_number(x) -> bool:
    """
    True iff x parses to a float and value > 0.
    """
    ok, val = try_parse_float(x)
    return bool(ok and val is not None and val > 0)


def is_percentage(x) -> bool:
    """
    True iff x parses to a float within [0, 100].
    """
    ok, val = try_parse_float(x)
    return bool(ok and val is not None and 0 <= val <= 100)


def line_item_problems(item: dict, index: int | None = None) -> list[str]:
    """
    Validate one line-item payload before it reaches the calculator or the store.
    Returns human-readable problems (empty list when valid).
    """
    label = f"Item {index + 1}" if index is not None else "Item"
    problems: list[str] = []
    if not non_empty(item.get("description")) and item.get("product_id") is None:
        problems.append(f"{label}: pick a product or enter a description.")
    if not is_strictly_positive_number(item.get("quantity")):
        problems.append(f"{label}: quantity must be greater than zero.")
    if not is_non_negative_number(item.get("unit_price", 0)):
        problems.append(f"{label}: unit price cannot be negative.")
    if not is_percentage(item.get("discount_percent", 0) or 0):
        problems.append(f"{label}: discount must be between 0 and 100%.")
    if not is_percentage(item.get("tax_percent", 0) or 0):
        problems.append(f"{label}: tax must be between 0 and 100%.")
    return problems
