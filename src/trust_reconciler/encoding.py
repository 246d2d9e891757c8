"""Wire encodings shared by resource documents.

Byte fields (secret data, CA bundles) travel as standard base64 strings.
Timestamps written to fleet annotations use RFC 3339 with up to nine
fractional digits, trailing zeros trimmed, in UTC with a ``Z`` suffix.
"""
from __future__ import annotations

import base64
import binascii
import datetime
import re

_RFC3339_PATTERN = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d{1,9}))?"
    r"(?P<offset>Z|[+-]\d{2}:\d{2})$"
)


def encode_bytes(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def decode_bytes(value: str | None) -> bytes:
    """Decode a base64 field; missing or empty fields decode to ``b""``.

    Raises
    ------
    ValueError
        If *value* is not valid base64.
    """
    if not value:
        return b""
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 field: {exc}") from exc


def format_timestamp(moment: datetime.datetime) -> str:
    """Format *moment* as RFC 3339 with nanosecond precision.

    Python datetimes carry microseconds, so the last three nanosecond
    digits are always zero and get trimmed with the other trailing zeros.
    """
    utc = moment.astimezone(datetime.timezone.utc)
    text = utc.strftime("%Y-%m-%dT%H:%M:%S")
    fraction = f"{utc.microsecond * 1000:09d}".rstrip("0")
    if fraction:
        text = f"{text}.{fraction}"
    return f"{text}Z"


def parse_timestamp(text: str) -> datetime.datetime:
    """Parse an RFC 3339 timestamp as written by :func:`format_timestamp`.

    Fractions finer than a microsecond are truncated.

    Raises
    ------
    ValueError
        If *text* is not an RFC 3339 timestamp.
    """
    match = _RFC3339_PATTERN.match(text)
    if match is None:
        raise ValueError(f"not an RFC 3339 timestamp: {text!r}")
    fraction = (match.group("fraction") or "").ljust(6, "0")[:6]
    offset = match.group("offset")
    if offset == "Z":
        offset = "+00:00"
    return datetime.datetime.fromisoformat(f"{match.group('base')}.{fraction}{offset}")
