import pytest

from upload_service.core.errors import ValidationError
from upload_service.services.metadata import (
    CommunityName,
    normalize_metadata,
    parse_community,
    parse_tags,
)


@pytest.mark.parametrize("value,expected", [
    ("hive-163772", CommunityName("hive-163772")),
    ("  hive-163772 ", CommunityName("hive-163772")),
    ({"name": "hive-163772", "title": "Threespeak"}, CommunityName("hive-163772")),
    (None, None),
    ("", None),
])
def test_parse_community(value, expected):
    assert parse_community(value) == expected


@pytest.mark.parametrize("value", [{}, {"name": ""}, {"name": 42}, {"title": "no name"}, 42, ["hive-1"]])
def test_malformed_community_rejected(value):
    with pytest.raises(ValidationError):
        parse_community(value)


def test_parse_tags_dedupes_and_strips():
    assert parse_tags([" vlog", "travel", "vlog", ""]) == ["vlog", "travel"]


def test_parse_tags_accepts_comma_string():
    assert parse_tags("vlog, travel,hive") == ["vlog", "travel", "hive"]


def test_too_many_tags():
    with pytest.raises(ValidationError):
        parse_tags([f"tag{i}" for i in range(26)])


def test_normalize_metadata():
    meta = normalize_metadata(
        "  Sunset timelapse ",
        "shot on the coast",
        ["timelapse"],
        {"name": "hive-100"},
        decline_rewards=True,
    )
    assert meta.title == "Sunset timelapse"
    assert meta.community.name == "hive-100"
    assert meta.decline_rewards is True


@pytest.mark.parametrize("title", [None, "", "   ", 7, "x" * 257])
def test_invalid_title(title):
    with pytest.raises(ValidationError):
        normalize_metadata(title)


def test_description_too_long():
    with pytest.raises(ValidationError):
        normalize_metadata("ok", "d" * 50001)
