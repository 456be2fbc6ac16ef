"""Device error code catalog and ERR line parsing."""

from __future__ import annotations

import re
from collections.abc import Sequence

ERROR_CODES: dict[str, str] = {
    "001": "Invalid command. Command not found.",
    "002": "Invalid module address (does not exist).",
    "003": "Invalid connector address (does not exist).",
    "004": "Invalid ID value.",
    "005": "Invalid frequency value.",
    "006": "Invalid repeat value.",
    "007": "Invalid offset value.",
    "008": "Invalid pulse count.",
    "009": "Invalid pulse data.",
    "010": "Uneven amount of <on|off> statements.",
    "011": "No carriage return found.",
    "012": "Repeat count exceeded.",
    "013": "IR command sent to input connector.",
    "014": "Blaster command sent to non-blaster connector.",
    "015": "No carriage return before buffer full.",
    "016": "No carriage return.",
    "017": "Bad command syntax.",
    "018": "Sensor command sent to non-input connector.",
    "019": "Repeated IR transmission failure.",
    "020": "Above designated IR <on|off> pair limit.",
    "021": "Symbol odd boundary.",
    "022": "Undefined symbol.",
    "023": "Unknown option.",
    "024": "Invalid baud rate setting.",
    "025": "Invalid flow control setting.",
    "026": "Invalid parity setting.",
    "027": "Settings are locked",
}

_TRAILING_CODE_RE = re.compile(r"(\d{3})$")


def describe(code: str) -> str | None:
    return ERROR_CODES.get(code)


def parse_error_code(fields: Sequence[str]) -> str:
    """Extract the 3-digit code from a comma-split ERR status line.

    Device firmwares do not format ERR lines uniformly, so the code token is
    located in stages, first match wins:

    1. Take the second field, or the first one when there is no second field,
       and split it on ``IR``. With two or more parts the code is the second
       part (``ERR,IR005`` style).
    2. Otherwise split that token on spaces. With two or more parts the code is
       the second part (``ERR 005`` style), else the token itself
       (``ERR_1:1,001`` style, where the second field is the bare code).
    3. If the token is not itself a known code, a trailing 3-digit run is used
       (``ERR_001`` style).
    """
    token = fields[1] if len(fields) > 1 and fields[1] else fields[0]
    parts = token.split("IR")
    if len(parts) == 1:
        parts = parts[0].split(" ")
    code = parts[1] if len(parts) >= 2 else parts[0]
    code = code.strip()
    if code in ERROR_CODES:
        return code
    match = _TRAILING_CODE_RE.search(code)
    return match.group(1) if match else code
