"""String helpers for DNs and attribute values returned by the directory."""

import re
from collections.abc import Mapping
from typing import Any

_HEX_RUN = re.compile(r"(?:\\[0-9a-fA-F]{2})+")


def escape_dn(dn: str) -> str:
    """Backslash-escape the commas inside the value of the first RDN.

    ``CN=Smith, John,OU=Staff,DC=example`` becomes
    ``CN=Smith\\, John,OU=Staff,DC=example``. Only commas between the first and
    the second ``=`` are considered, and the last of them is left alone because
    it separates the first RDN from the next one. Already escaped commas are
    skipped, so the function is idempotent.
    """
    if not dn or "," not in dn:
        return dn

    commas: list[int] = []
    equals = 0
    skip = False
    for i, ch in enumerate(dn):
        if skip:
            skip = False
            continue
        if ch == "\\":
            skip = True
            continue
        if ch == "=":
            equals += 1
            if equals == 2:
                break
        elif ch == "," and equals == 1:
            commas.append(i)

    if equals < 2 or len(commas) < 2:
        return dn

    # commas[-1] terminates the first RDN
    parts: list[str] = []
    start = 0
    for i in commas[:-1]:
        parts.append(dn[start:i])
        start = i + 1
    parts.append(dn[start:])
    return "\\,".join(parts)


def _decode_hex_run(match: re.Match) -> str:
    run = match.group(0)
    try:
        return bytes.fromhex(run.replace("\\", "")).decode("utf-8")
    except UnicodeDecodeError:
        return run


def parse_escaped_hex(value: str) -> str:
    """Turn ``\\e7\\a0\\94`` style byte escapes back into UTF-8 text.

    Every maximal run of backslash + two hex digits is decoded as one UTF-8
    byte sequence. Anything else, including a backslash that is not followed
    by two hex digits, is kept literally.
    """
    if "\\" not in value:
        return value
    return _HEX_RUN.sub(_decode_hex_run, value)


def decode_hex_values(value: Any) -> Any:
    """Apply parse_escaped_hex to every string nested inside ``value``."""
    if isinstance(value, str):
        return parse_escaped_hex(value)
    if isinstance(value, Mapping):
        return {key: decode_hex_values(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [decode_hex_values(item) for item in value]
    return value
