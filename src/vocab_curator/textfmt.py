"""Multi-line string normalization for the JSON store and display helpers."""
from datetime import datetime, timezone
from typing import Optional

TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"
DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


def normalize_lines(value: str) -> list[str]:
    """Split text into lines with trailing whitespace removed.

    Blank lines before the first and after the last meaningful line are
    dropped; runs of blank lines in between collapse to a single one.
    """
    lines = []
    pending_blank = False
    for line in value.splitlines():
        line = line.rstrip()
        if not line:
            if lines:
                pending_blank = True
            continue
        if pending_blank:
            lines.append("")
            pending_blank = False
        lines.append(line)
    return lines


def encode_text(value: Optional[str]):
    """JSON value for a string field: str, list of lines, or None."""
    if value is None:
        return None
    if "\n" not in value:
        return value
    lines = normalize_lines(value)
    if len(lines) <= 1:
        return lines[0] if lines else ""
    return lines


def decode_text(value) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, list) and all(isinstance(line, str) for line in value):
        return "\n".join(value)
    raise ValueError(f"expected a string or a list of strings, got {type(value).__name__}")


def format_iso(moment: Optional[datetime]) -> Optional[str]:
    if moment is None:
        return None
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"expected an ISO timestamp, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """Second-resolution timestamp used in backup file names."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def format_for_display(moment: Optional[datetime], default: str = "none") -> str:
    if moment is None:
        return default
    return moment.astimezone(timezone.utc).strftime(DISPLAY_FORMAT)
