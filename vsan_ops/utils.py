import sys
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Return current UTC time as ISO format string with timezone info."""
    return utc_now().isoformat()


UNICODE_FALLBACKS = {
    "\u2713": "[OK]",   # check mark
    "\u2717": "[X]",    # ballot x
    "\u26a0": "[!]",    # warning sign
    "\u2192": "->",     # right arrow
    "\u2026": "...",    # ellipsis
    "\u2013": "-",      # en dash
    "\u2014": "-",      # em dash
}


def _normalize_unicode(text: str) -> str:
    """Replace problematic Unicode characters with ASCII equivalents."""
    for bad, repl in UNICODE_FALLBACKS.items():
        text = text.replace(bad, repl)
    return text


def _safe_to_stdout(text: str) -> str:
    """Ensure text can be encoded to stdout without exceptions."""
    enc = getattr(sys.stdout, "encoding", None) or "utf-8"
    try:
        return text.encode(enc, errors="replace").decode(enc, errors="replace")
    except Exception:
        return text.encode("ascii", errors="replace").decode("ascii", errors="replace")


LOG_LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "WARNING": 30, "ERROR": 40}


def console_log(message: str, level: str = "INFO", min_level: str = "INFO"):
    """Log with timestamp"""
    if LOG_LEVELS.get(level.upper(), 20) < LOG_LEVELS.get(min_level.upper(), 20):
        return
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    msg = _safe_to_stdout(_normalize_unicode(message))
    print(f"[{timestamp}] [{level}] {msg}")


def console_logger(min_level: str = "INFO"):
    """console_log bound to a minimum level, for handing to components."""
    def log(message: str, level: str = "INFO"):
        console_log(message, level, min_level=min_level)
    return log


def format_capacity_gb(capacity_gb: float) -> str:
    """Render a capacity for operator listings (GB with two decimals)."""
    return f"{capacity_gb:.2f} GB"


def split_csv(value: str) -> list:
    """Split a comma-separated CLI value, dropping blanks and whitespace."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
