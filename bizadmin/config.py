import os
from pathlib import Path

from .constants import DATA_DIR, DB_FILE_NAME, DEFAULT_TAX_RATE

BASE_DIR = Path(__file__).resolve().parent
DATA_PATH = Path(os.environ.get("BIZADMIN_DATA_DIR", BASE_DIR.parent / DATA_DIR))
DB_PATH = DATA_PATH / DB_FILE_NAME


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


# rate applied when a line is switched to tax-inclusive while its rate is 0
DEFAULT_TAX_PERCENT = _env_float("BIZADMIN_DEFAULT_TAX_RATE", DEFAULT_TAX_RATE)

# How a tax-inclusive line is priced, per document kind:
#   "on_top"  - tax is added on top of the discounted amount
#   "extract" - the discounted amount already contains the tax
DOCUMENT_TAX_POLICY = {
    "quotation": "on_top",
    "invoice": "on_top",
    "credit_note": "extract",
}
