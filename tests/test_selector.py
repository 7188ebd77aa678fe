"""Tests for the selector library."""

import pytest

from kahoy.exceptions import NotValidException
from kahoy.selector import PathFilter, Requirement, compile_regexes, parse_selector


def test_path_filter_exclude_wins() -> None:
    """Test excluded paths are ignored even when included."""
    path_filter = PathFilter(exclude=[".*/group1/.*"], include=[".*/group.*"])
    assert path_filter.ignore("/t/group1/a.yaml")
    assert not path_filter.ignore("/t/group2/a.yaml")
    assert path_filter.ignore("/t/other/a.yaml")


def test_path_filter_no_include() -> None:
    """Test everything not excluded is kept without include regexes."""
    path_filter = PathFilter(exclude=[".*/secrets/.*"])
    assert path_filter.ignore("/t/secrets/a.yaml")
    assert not path_filter.ignore("/t/apps/a.yaml")
    assert not PathFilter().ignore("/t/apps/a.yaml")


def test_invalid_regex() -> None:
    """Test regexes that don't compile."""
    with pytest.raises(NotValidException, match="could not compile"):
        compile_regexes(["[a-"])
    assert compile_regexes(["", "a"])[0].pattern == "a"


def test_parse_selector() -> None:
    """Test parsing all the supported operators."""
    requirements = parse_selector("app=web, tier==front,env!=dev,managed,!legacy")
    assert requirements == [
        Requirement("app", "=", "web"),
        Requirement("tier", "=", "front"),
        Requirement("env", "!=", "dev"),
        Requirement("managed", "exists"),
        Requirement("legacy", "!exists"),
    ]
    assert [str(r) for r in requirements] == [
        "app=web",
        "tier=front",
        "env!=dev",
        "managed",
        "!legacy",
    ]


def test_empty_selector() -> None:
    """Test an empty selector has no requirements."""
    assert parse_selector(None) == []
    assert parse_selector("") == []


@pytest.mark.parametrize("expr", ["=web", "app=a b", "-app=web", "app/=x"])
def test_invalid_selector(expr: str) -> None:
    """Test invalid selectors."""
    with pytest.raises(NotValidException, match="invalid selector"):
        parse_selector(expr)


@pytest.mark.parametrize(
    ("requirement", "values", "expected"),
    [
        (Requirement("app", "=", "web"), {"app": "web"}, True),
        (Requirement("app", "=", "web"), {"app": "db"}, False),
        (Requirement("app", "=", "web"), {}, False),
        (Requirement("app", "!=", "web"), {}, True),
        (Requirement("app", "!=", "web"), {"app": "web"}, False),
        (Requirement("app", "exists"), {"app": ""}, True),
        (Requirement("app", "!exists"), {"app": ""}, False),
        (Requirement("app", "!exists"), {}, True),
    ],
)
def test_requirement_matches(
    requirement: Requirement, values: dict[str, str], expected: bool
) -> None:
    """Test requirements against label values."""
    assert requirement.matches(values) == expected
