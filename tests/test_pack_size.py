import pytest

from invoice_analyzer.ingestion.pack_size import PackSizeInfo, parse_pack_size, price_per_unit


@pytest.mark.parametrize("text, expected", [
    ("6/16.5 OZ", PackSizeInfo(6, "16.5", "OZ", 99.0)),
    ("24/24 OZ", PackSizeInfo(24, "24", "OZ", 576)),
    ("6/#10 CN", PackSizeInfo(6, "#10", "CN", 6)),
    ("25 LB", PackSizeInfo(1, "25", "LB", 25)),
    ("1.1 BU", PackSizeInfo(1, "1.1", "BU", 1.1)),
    ("2000 EACH", PackSizeInfo(1, "2000", "EA", 2000)),
])
def test_parse_known_notations(text, expected):
    assert parse_pack_size(text) == expected


def test_lowercase_units_are_normalized():
    info = parse_pack_size("4/5 lb")
    assert info.unit_type == "LB"
    assert info.total_units == 20


def test_empty_pack_size():
    assert parse_pack_size("") == PackSizeInfo(1, "", "", 1)
    assert parse_pack_size(None) == PackSizeInfo(1, "", "", 1)


def test_unknown_notation_keeps_original_text():
    info = parse_pack_size("CASE OF ASSORTED")
    assert info == PackSizeInfo(1, "CASE OF ASSORTED", "", 1)


def test_price_per_unit():
    assert price_per_unit(50.0, "25 LB") == pytest.approx(2.0)
    assert price_per_unit(60.0, "6/10 LB") == pytest.approx(1.0)
    # Unparseable packs count as a single unit
    assert price_per_unit(12.5, "MISC") == 12.5
