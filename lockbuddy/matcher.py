"""Package name and version matching."""

import fnmatch
import logging
from typing import Iterable, List

import nodesemver

from .package_id import PackageIdParser

logger = logging.getLogger(__name__)

ANY_VERSION = ('', '*', 'latest', 'x')


def matches_wildcard(name: str, pattern: str) -> bool:
    """Exact name comparison, or '*' glob matching when the pattern has one."""
    if '*' not in pattern:
        return name == pattern
    return fnmatch.fnmatchcase(name, pattern)


def matches_any_wildcard(name: str, patterns: Iterable[str]) -> bool:
    return any(matches_wildcard(name, pattern) for pattern in patterns)


def is_wildcard(pattern: str) -> bool:
    return '*' in pattern


def parse_version_specifier(specifier: str) -> List[str]:
    """Split an npm range on '||' into its alternatives."""
    return [part.strip() for part in specifier.split('||') if part.strip()]


def matches_version(version: str, specifier: str, exact: bool = False) -> bool:
    """
    Check a resolved version against a requested version or range.

    Args:
        version: Resolved version token, peer suffix allowed ('18.2.0(react@18.2.0)')
        specifier: Version or npm range ('^18.0.0', '1.x || 2.x')
        exact: Compare each alternative literally instead of as a range

    Returns:
        True if the version satisfies the specifier
    """
    if specifier is None or specifier.strip() in ANY_VERSION:
        return True

    base = PackageIdParser.base_version(version)
    alternatives = parse_version_specifier(specifier)

    if any(alt in (version, base) for alt in alternatives):
        return True
    if exact:
        return False

    try:
        return bool(nodesemver.satisfies(base, specifier, loose=True))
    except (ValueError, TypeError) as e:
        logger.debug(f"Cannot compare {version} against {specifier}: {e}")
        return False
