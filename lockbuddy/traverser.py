"""Generic traversal of the decoded lockfile mapping."""

from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

EDGE_SECTIONS = ('dependencies', 'optionalDependencies', 'peerDependencies')

Visitor = Callable[[str, Any, List[str]], Optional[bool]]


def traverse_lockfile(data: Any, visitor: Visitor, path: Optional[List[str]] = None) -> None:
    """
    Depth-first walk over nested mappings.

    The visitor is called as visitor(key, value, path) where path lists the
    keys leading to the entry's parent. Returning False skips the entry's
    children.
    """
    if not isinstance(data, dict):
        return
    path = path or []
    for key, value in data.items():
        key = str(key)
        if visitor(key, value, path) is False:
            continue
        if isinstance(value, dict):
            traverse_lockfile(value, visitor, path + [key])


def iter_dependency_edges(data: Dict[str, Any], sections: Tuple[str, ...] = ('snapshots', 'packages')) -> Iterator[Tuple[str, str, str, str, str]]:
    """
    Yield every dependency edge recorded under packages or snapshots.

    Yields:
        (section, parent key, edge section, dependency name, version token)
    """
    edges: List[Tuple[str, str, str, str, str]] = []

    def visit(key: str, value: Any, path: List[str]) -> Optional[bool]:
        # Edge maps sit at <section>/<package key>/<edge section>
        if len(path) == 2 and path[0] in sections and key in EDGE_SECTIONS and isinstance(value, dict):
            for dep_name, dep_version in value.items():
                edges.append((path[0], path[1], key, str(dep_name), str(dep_version)))
            return False
        if len(path) >= 2:
            return False
        if not path and key not in sections:
            return False
        return None

    traverse_lockfile(data, visit)
    yield from edges
