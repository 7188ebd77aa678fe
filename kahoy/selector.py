"""Library for selecting resources by path regexes and metadata selectors."""

from collections.abc import Iterable
from dataclasses import dataclass
import logging
import re

from .exceptions import NotValidException

__all__ = [
    "PathFilter",
    "Requirement",
    "compile_regexes",
    "parse_selector",
]

_LOGGER = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*/)?[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?$")


def compile_regexes(regexes: Iterable[str]) -> list[re.Pattern[str]]:
    """Compile the regexes skipping empty ones."""
    compiled = []
    for regex in regexes:
        if not regex:
            continue
        try:
            compiled.append(re.compile(regex))
        except re.error as err:
            raise NotValidException(f"could not compile {regex!r} regex: {err}") from err
    return compiled


class PathFilter:
    """Decide if a path is ignored using exclude and include regexes.

    Excludes are checked first. When at least one include regex is present,
    paths not matching any of them are ignored.
    """

    def __init__(self, exclude: Iterable[str] = (), include: Iterable[str] = ()) -> None:
        self._exclude = compile_regexes(exclude)
        self._include = compile_regexes(include)

    def ignore(self, path: str) -> bool:
        """Return true when the path should be ignored."""
        if any(regex.search(path) for regex in self._exclude):
            return True
        if any(regex.search(path) for regex in self._include):
            return False
        return bool(self._include)


@dataclass(frozen=True)
class Requirement:
    """A single term of a label or annotation selector."""

    key: str
    operator: str
    value: str = ""

    def matches(self, values: dict[str, str]) -> bool:
        if self.operator == "=":
            return self.key in values and values[self.key] == self.value
        if self.operator == "!=":
            return values.get(self.key) != self.value
        if self.operator == "exists":
            return self.key in values
        return self.key not in values

    def __str__(self) -> str:
        if self.operator == "exists":
            return self.key
        if self.operator == "!exists":
            return f"!{self.key}"
        return f"{self.key}{self.operator}{self.value}"


def _requirement(term: str) -> Requirement:
    for token, operator in (("!=", "!="), ("==", "="), ("=", "=")):
        if token in term:
            key, value = term.split(token, 1)
            return Requirement(key.strip(), operator, value.strip())
    if term.startswith("!"):
        return Requirement(term[1:].strip(), "!exists")
    return Requirement(term, "exists")


def parse_selector(expr: str | None) -> list[Requirement]:
    """Parse a `key1=value1,key2!=value2` style selector.

    Supports `=`, `==`, `!=` and bare `key` / `!key` existence checks. An
    empty selector has no requirements and selects everything.
    """
    requirements = []
    for term in (expr or "").split(","):
        term = term.strip()
        if not term:
            continue
        requirement = _requirement(term)
        if not _KEY_RE.match(requirement.key):
            raise NotValidException(f"invalid selector {expr!r}: bad key in {term!r}")
        if any(char in requirement.value for char in "=!, "):
            raise NotValidException(f"invalid selector {expr!r}: bad value in {term!r}")
        requirements.append(requirement)
    return requirements
