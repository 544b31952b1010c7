import pytest

from serverlog.models.levels import LEVEL_NAMES, Level, parse_optional_level


def test_levels_are_totally_ordered():
    assert Level.TRACE < Level.DEBUG < Level.INFO < Level.WARN < Level.ERROR
    assert sorted(Level, reverse=True)[0] is Level.ERROR


def test_level_names_match_logger_methods():
    assert LEVEL_NAMES == ("trace", "debug", "info", "warn", "error")
    assert Level.WARN.method == "warn"
    assert str(Level.INFO) == "info"


@pytest.mark.parametrize("raw,expected", [
    ("info", Level.INFO),
    ("INFO", Level.INFO),
    (" Debug ", Level.DEBUG),
    ("warning", Level.WARN),
    (Level.ERROR, Level.ERROR),
])
def test_parse(raw, expected):
    assert Level.parse(raw) is expected


@pytest.mark.parametrize("raw", ["fatal", "", "critical", 30, None, True])
def test_parse_rejects_unknown_values(raw):
    with pytest.raises(ValueError, match="Invalid level"):
        Level.parse(raw)


def test_parse_optional_level():
    assert parse_optional_level(None) is None
    assert parse_optional_level("none") is None
    assert parse_optional_level("NONE") is None
    assert parse_optional_level("trace") is Level.TRACE
    with pytest.raises(ValueError):
        parse_optional_level("nope")
