"""Parsing and formatting of pnpm package instance ids."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import PackageIdParseError


@dataclass
class ParsedPackage:
    """
    Parsed package instance id.

    Attributes:
        name: Package name, including the scope for scoped packages
        version: Resolved version without peer qualifiers, or None
        scope: '@scope' for scoped packages, otherwise None
        dependencies: Peer qualifiers in order of appearance (name -> version)
    """
    name: str
    version: Optional[str] = None
    scope: Optional[str] = None
    dependencies: Dict[str, str] = field(default_factory=dict)


class PackageIdParser:
    """Parser for ids of the form name[@version][(peer@version)...]."""

    @classmethod
    def parse(cls, package_id: str) -> ParsedPackage:
        """
        Parse a package instance id.

        Args:
            package_id: Id such as 'react-dom@18.2.0(react@18.2.0)'

        Returns:
            ParsedPackage with name, version, scope and peer qualifiers

        Raises:
            PackageIdParseError: if no package name can be extracted
        """
        if package_id is None or not str(package_id).strip():
            raise PackageIdParseError(str(package_id), "empty id")

        text = str(package_id).strip()
        prefix, groups = cls._strip_qualifiers(package_id, text)

        if '(' in prefix or ')' in prefix:
            raise PackageIdParseError(package_id, "unbalanced parentheses")

        name, version = cls._split_at_version(prefix)
        if not name:
            raise PackageIdParseError(package_id, "missing package name")

        dependencies: Dict[str, str] = {}
        for group in groups:
            dep_name, dep_version = cls._split_group(group)
            dependencies[dep_name] = dep_version

        return ParsedPackage(
            name=name,
            version=version,
            scope=cls.get_scope(name),
            dependencies=dependencies,
        )

    @classmethod
    def format(cls, parsed: ParsedPackage) -> str:
        """Encode a ParsedPackage back into its id form."""
        text = parsed.name
        if parsed.version:
            text += f"@{parsed.version}"
        for dep_name, dep_version in parsed.dependencies.items():
            text += f"({dep_name}@{dep_version})" if dep_version else f"({dep_name})"
        return text

    @classmethod
    def get_name(cls, package_id: str) -> str:
        return cls.parse(package_id).name

    @classmethod
    def get_scope(cls, name: str) -> Optional[str]:
        if name.startswith('@') and '/' in name:
            return name.split('/', 1)[0]
        return None

    @classmethod
    def split_version(cls, version: str) -> Tuple[str, str]:
        """
        Split a resolved version token into its base version and peer suffix.

        '18.2.0(react@18.2.0)' -> ('18.2.0', '(react@18.2.0)')
        """
        index = version.find('(')
        if index == -1:
            return version, ''
        return version[:index], version[index:]

    @classmethod
    def base_version(cls, version: str) -> str:
        return cls.split_version(version)[0]

    @classmethod
    def _strip_qualifiers(cls, package_id: str, text: str) -> Tuple[str, List[str]]:
        """Remove right-anchored top-level '(...)' groups, returning them in order."""
        groups: List[str] = []
        while text.endswith(')'):
            depth = 0
            start = None
            for i in range(len(text) - 1, -1, -1):
                char = text[i]
                if char == ')':
                    depth += 1
                elif char == '(':
                    depth -= 1
                    if depth == 0:
                        start = i
                        break
            if start is None:
                raise PackageIdParseError(package_id, "unbalanced parentheses")
            groups.insert(0, text[start + 1:-1])
            text = text[:start]
        return text, groups

    @classmethod
    def _split_at_version(cls, text: str) -> Tuple[str, Optional[str]]:
        # An '@' at index 0 is the scope marker, not a version separator
        at = text.rfind('@')
        if at <= 0:
            return text, None
        return text[:at], text[at + 1:] or None

    @classmethod
    def _split_group(cls, group: str) -> Tuple[str, str]:
        """Split 'name@version' on its last '@' outside nested parentheses."""
        depth = 0
        split_at = -1
        for i, char in enumerate(group):
            if char == '(':
                depth += 1
            elif char == ')':
                depth -= 1
            elif char == '@' and depth == 0 and i > 0:
                split_at = i
        if split_at == -1:
            return group, ''
        return group[:split_at], group[split_at + 1:]
