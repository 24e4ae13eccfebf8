"""
Utility functions for logging, timestamps and text processing.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Optional


def init_logger(
    name: str = "carscout",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    log_file: Optional[str] = "carscout.log"
) -> logging.Logger:
    """Initialize logger with console and optional file handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    console_level_num = getattr(logging, console_level.upper(), logging.INFO)
    ch = logging.StreamHandler()
    ch.setLevel(console_level_num)

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    if log_file:
        file_level_num = getattr(logging, file_level.upper(), logging.DEBUG)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level_num)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return now_utc().isoformat()


def now_millis() -> int:
    return int(now_utc().timestamp() * 1000)


def epoch_to_iso(seconds: Optional[float]) -> Optional[str]:
    """Convert a unix timestamp in seconds to an ISO string."""
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(float(seconds), tz=timezone.utc).isoformat()
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string. Naive values are treated as UTC."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def clean_text(s: Optional[str]) -> str:
    """Clean and normalize text by removing extra whitespace."""
    if not s:
        return ""
    s = re.sub(r"\s+", " ", s)
    return s.strip()


def remove_utf8_escaped_characters(s: Optional[str]) -> str:
    """Decode ``\\uXXXX`` escapes left over in embedded JSON strings."""
    if not s:
        return ""
    return re.sub(r"\\u([0-9a-fA-F]{4})", lambda m: chr(int(m.group(1), 16)), s)


def remove_years(s: Optional[str]) -> str:
    """Strip four-digit model years from a title."""
    if not s:
        return ""
    return clean_text(re.sub(r"\b(19|20)\d{2}\b", " ", s))


def to_int(value) -> Optional[int]:
    """Parse an integer out of text like ``"123,456 mi"``."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)
    digits = re.sub(r"[^\d]", "", str(value))
    if not digits:
        return None
    return int(digits)


def to_float(value) -> Optional[float]:
    """Parse a price-like number out of text like ``"$12,500"``."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    m = re.search(r"\d+(?:\.\d+)?", str(value).replace(",", ""))
    if not m:
        return None
    return float(m.group(0))
