import logging
import os

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_logger(name="bizadmin"):
    """
    Return the app logger, attaching one stream handler on first use.
    Level comes from BIZADMIN_LOG_LEVEL (default INFO).
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        level = os.environ.get("BIZADMIN_LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, level, logging.INFO))
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(ch)
    return logger


def log_failure(logger: logging.Logger, what: str, err: BaseException, *, level=logging.ERROR, **context):
    """
    Log a failed step with whatever structured fields the error carries
    (code/details/hint on store errors) plus caller context.
    """
    fields = {
        "code": getattr(err, "code", None),
        "details": getattr(err, "details", None),
        "hint": getattr(err, "hint", None),
    }
    fields.update(context)
    extra = ", ".join(f"{k}={v!r}" for k, v in fields.items() if v is not None)
    if extra:
        logger.log(level, "%s failed: %s (%s)", what, err, extra)
    else:
        logger.log(level, "%s failed: %s", what, err)
