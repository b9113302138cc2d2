"""Turns raw inspector observations into well-formed records."""

import math
import re

from portop.models import Port, ProcessPortRecord, RawPortRecord

UNKNOWN_PROCESS = "unknown"
NOT_AVAILABLE = "N/A"
MAX_PORT = 65535

# '80/tcp', '5353/udp6', '*:8080 (LISTEN)', '8080 tcp'
_PROTOCOL_SUFFIX = re.compile(r"(?:\s*\([A-Z_]+\)|[\s/](?:tcp|udp)6?)$", re.IGNORECASE)


def normalize(raw: RawPortRecord) -> ProcessPortRecord:
    """
    Normalize one raw record. Never raises.

    Malformed fields degrade to placeholders: 'unknown' for a blank process
    name, 'N/A' for user and unparseable stats. An unparseable port keeps
    its raw token so it can still be displayed.
    """
    return ProcessPortRecord(
        pid=_normalize_pid(raw.pid),
        process_name=_text(raw.process_name) or UNKNOWN_PROCESS,
        command=_text(raw.command),
        port=normalize_port(raw.port),
        user=_text(raw.user) or NOT_AVAILABLE,
        cpu_percent=_normalize_stat(raw.cpu_percent),
        mem_percent=_normalize_stat(raw.mem_percent),
    )


def normalize_port(token: object) -> Port | None:
    """
    Parse a raw port token.

    Returns the port number when the token (minus any address prefix and
    protocol suffix) is a number in range, None for an empty token and the
    token itself otherwise.
    """
    if isinstance(token, int) and not isinstance(token, bool):
        return token if 0 <= token <= MAX_PORT else str(token)
    if token is None:
        return None
    if not isinstance(token, str):
        token = str(token)
    if not token.strip():
        return None

    candidate = token.strip()
    while True:
        stripped = _PROTOCOL_SUFFIX.sub("", candidate)
        if stripped == candidate:
            break
        candidate = stripped
    candidate = candidate.rsplit(":", 1)[-1]

    # len check keeps int() clear of the digit-count limit
    if (
        candidate.isascii()
        and candidate.isdigit()
        and len(candidate) <= len(str(MAX_PORT))
        and int(candidate) <= MAX_PORT
    ):
        return int(candidate)
    return token


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _normalize_pid(value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return 0


def _normalize_stat(value: object) -> str:
    """Keep the observed text of a percentage, or 'N/A' if it is not a number."""
    if isinstance(value, bool) or value is None:
        return NOT_AVAILABLE
    if isinstance(value, (int, float)):
        try:
            return f"{value:.1f}" if math.isfinite(value) else NOT_AVAILABLE
        except OverflowError:
            return NOT_AVAILABLE
    text = str(value).strip()
    try:
        number = float(text)
    except ValueError:
        return NOT_AVAILABLE
    return text if math.isfinite(number) else NOT_AVAILABLE
