"""
Pack size parsing for US Foods invoice lines.

Vendor pack notations describe how a case is made up, e.g. "6/16.5 OZ" is six
units of 16.5 oz each. Parsing them lets us compare prices across pack formats
on a per-unit basis.
"""

import re
from dataclasses import dataclass

_NUM = r"\d+(?:\.\d+)?"

# "6/16.5 OZ", "24/24 OZ", "6/10 LBA"
_SLASH_RE = re.compile(rf"^({_NUM})\s*/\s*({_NUM})\s*([a-z]+)$", re.IGNORECASE)

# "6/#10 CN" (cans)
_CAN_RE = re.compile(r"^(\d+)\s*/\s*#(\d+)\s*(cn|can)$", re.IGNORECASE)

# "35 LB", "2000 EA", "1.1 BU"
_SIMPLE_RE = re.compile(rf"^({_NUM})\s*([a-z]+)$", re.IGNORECASE)


@dataclass(frozen=True)
class PackSizeInfo:
    multiplier: float
    unit_size: str
    unit_type: str
    total_units: float


def _to_number(text: str) -> float:
    value = float(text)
    return int(value) if value.is_integer() else value


def parse_pack_size(pack_size) -> PackSizeInfo:
    """
    Parse a vendor pack size notation.

    Examples:
        "6/16.5 OZ" -> PackSizeInfo(6, "16.5", "OZ", 99.0)
        "25 LB"     -> PackSizeInfo(1, "25", "LB", 25)
        "6/#10 CN"  -> PackSizeInfo(6, "#10", "CN", 6)

    Unknown notations keep the original text as unit_size with one total unit.
    """
    if pack_size is None or not str(pack_size).strip():
        return PackSizeInfo(1, "", "", 1)

    text = str(pack_size).strip()

    match = _SLASH_RE.match(text)
    if match:
        multiplier = _to_number(match.group(1))
        size = _to_number(match.group(2))
        return PackSizeInfo(multiplier, match.group(2), match.group(3).upper(), multiplier * size)

    match = _CAN_RE.match(text)
    if match:
        multiplier = int(match.group(1))
        return PackSizeInfo(multiplier, f"#{match.group(2)}", "CN", multiplier)

    match = _SIMPLE_RE.match(text)
    if match:
        unit_type = match.group(2).upper()
        if unit_type == "EACH":
            unit_type = "EA"
        return PackSizeInfo(1, match.group(1), unit_type, _to_number(match.group(1)))

    return PackSizeInfo(1, str(pack_size), "", 1)


def price_per_unit(unit_price: float, pack_size) -> float:
    """Normalize a case price to the price of one base unit of the pack."""
    info = parse_pack_size(pack_size)
    if info.total_units <= 0:
        return unit_price
    return unit_price / info.total_units
