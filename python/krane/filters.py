"""
Include/exclude filtering for namespace and image name lists.

Each pattern is compiled once into a matcher: when the pattern is a valid
regular expression it is searched for anywhere in the item, otherwise the
pattern is used as a literal prefix. Invalid regular expressions never raise.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern, Sequence

from krane.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Matcher:
    """A single include/exclude rule.

    Exactly one of ``regex`` and ``prefix`` is set.
    """
    pattern: str
    regex: Optional[Pattern] = None
    prefix: Optional[str] = None

    @property
    def is_regex(self) -> bool:
        return self.regex is not None

    def matches(self, value: str) -> bool:
        if self.regex is not None:
            return self.regex.search(value) is not None
        return value.startswith(self.prefix)


def compile_matcher(pattern: str) -> Matcher:
    """Compile a pattern as a regex, falling back to a prefix matcher."""
    try:
        return Matcher(pattern=pattern, regex=re.compile(pattern))
    except re.error as e:
        logger.debug(f"Pattern '{pattern}' is not a valid regex ({e}), using prefix match")
        return Matcher(pattern=pattern, prefix=pattern)


def compile_matchers(patterns: Optional[Iterable[str]]) -> List[Matcher]:
    """Compile a list of patterns, ignoring blank entries.

    Args:
        patterns: Raw patterns as given on the command line or in config

    Returns:
        List of matchers in the same order as the patterns
    """
    matchers = []
    for pattern in patterns or []:
        pattern = pattern.strip()
        if not pattern:
            continue
        matchers.append(compile_matcher(pattern))
    return matchers


def matches_any(value: str, matchers: Sequence[Matcher]) -> bool:
    return any(m.matches(value) for m in matchers)


class FilterSet:
    """Compiled include/exclude matchers.

    An empty include list means "include everything". An exclude match always
    wins over an include match.
    """

    def __init__(self, includes: Optional[Iterable[str]] = None, excludes: Optional[Iterable[str]] = None):
        self.includes = compile_matchers(includes)
        self.excludes = compile_matchers(excludes)

    def __bool__(self) -> bool:
        return bool(self.includes or self.excludes)

    def allows(self, value: str) -> bool:
        if self.includes and not matches_any(value, self.includes):
            return False
        return not matches_any(value, self.excludes)

    def apply(self, items: Iterable[str]) -> List[str]:
        """Return the allowed items, preserving their order."""
        return [item for item in items if self.allows(item)]


def filter_items(items: Iterable[str], includes: Optional[Iterable[str]] = None,
                 excludes: Optional[Iterable[str]] = None) -> List[str]:
    """Filter items with include/exclude patterns (regex or prefix).

    Args:
        items: Namespace or image names
        includes: Patterns of which at least one must match (empty = all)
        excludes: Patterns of which none may match

    Returns:
        Kept items in their original order
    """
    return FilterSet(includes, excludes).apply(items)


def remove_duplicates(items: Iterable[str]) -> List[str]:
    """Remove duplicate strings while preserving first-seen order."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def split_patterns(values: Optional[Iterable[str]]) -> List[str]:
    """Flatten repeatable, comma-separated CLI values into a pattern list.

    ``["a,b", "c"]`` becomes ``["a", "b", "c"]``.
    """
    patterns = []
    for value in values or []:
        patterns.extend(part.strip() for part in value.split(",") if part.strip())
    return patterns
