import pytest

from index_control.core.utils.dict_utils import _read_field, _read_int_like_field, _read_variant


def test_reads_first_listed_variant():
    assert _read_variant({"Err": "ChainNotFound"}, ("Ok", "Err")) == ("Err", "ChainNotFound")
    assert _read_variant({"Ok": None}, ("Ok", "Err")) == ("Ok", None)
    assert _read_variant({"Pending": 1}, ("Ok", "Err")) is None
    assert _read_variant(["Ok"], ("Ok", "Err")) is None


@pytest.mark.parametrize("raw,expected", [(7, 7), ("42", 42), ("0x10", 16), ("n/a", None), (True, None)])
def test_int_like_fields(raw, expected):
    assert _read_int_like_field({"gasRequired": raw}, "gasRequired") == expected


def test_missing_field_reads_none():
    assert _read_field({"a": 1}, "b") is None
    assert _read_field("not a mapping", "a") is None
