# bizadmin/utils/helpers.py
from datetime import date
from typing import Union

NumberLike = Union[float, int, str]


def today_str() -> str:
    return date.today().isoformat()


def compact_date(date_str: str | None = None) -> str:
    """'2024-03-09' -> '20240309'; defaults to today."""
    return (date_str or today_str())[:10].replace("-", "")


def fmt_money(v: NumberLike, places: int = 2) -> str:
    """
    Amount with thousands separators and `places` decimals. This is the only
    place amounts get rounded; pricing keeps full precision.
    Unparseable input comes back unchanged as text.
    """
    try:
        x = float(v)
    except (TypeError, ValueError):
        return str(v)
    return f"{x:,.{places}f}"
