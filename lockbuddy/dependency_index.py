"""Reverse indices over built dependency trees."""

import logging
from typing import Dict, List, Mapping, Optional

from .models import DependencyTreeNode, PackageDependencyInfo

logger = logging.getLogger(__name__)


class DependencyIndex:
    """
    Instance -> projects that reach it, and instance -> instances that directly depend on it.

    Link nodes are walked through but are not instances themselves; packages
    directly under a link are recorded as having no dependent.
    """

    def __init__(self, trees: Mapping[str, List[DependencyTreeNode]]):
        self._info: Dict[str, PackageDependencyInfo] = {}
        self._names: Dict[str, str] = {}
        self._versions: Dict[str, str] = {}
        self._importers_cache: Dict[str, List[str]] = {}
        self._dependents_cache: Dict[str, List[str]] = {}

        for importer_path, roots in trees.items():
            for node in roots:
                self._index_node(importer_path, node, None)

        logger.debug(f"Indexed {len(self._info)} package instances across {len(trees)} projects")

    def _index_node(self, importer_path: str, node: DependencyTreeNode, parent_id: Optional[str]) -> None:
        if node.is_link:
            for child in node.children:
                self._index_node(importer_path, child, None)
            return

        package_id = node.package_id
        info = self._info.get(package_id)
        if info is None:
            info = PackageDependencyInfo()
            self._info[package_id] = info
            self._names[package_id] = node.name
            self._versions[package_id] = node.version

        info.importers.add(importer_path)
        if parent_id is not None:
            info.direct_dependents.add(parent_id)

        for child in node.children:
            self._index_node(importer_path, child, package_id)

    def importers_of(self, package_id: str) -> List[str]:
        """Sorted projects that reach the instance, directly or transitively."""
        cached = self._importers_cache.get(package_id)
        if cached is None:
            info = self._info.get(package_id)
            cached = sorted(info.importers) if info else []
            self._importers_cache[package_id] = cached
        return cached

    def direct_dependents_of(self, package_id: str) -> List[str]:
        """Sorted instances that list the instance as a direct dependency."""
        cached = self._dependents_cache.get(package_id)
        if cached is None:
            info = self._info.get(package_id)
            cached = sorted(info.direct_dependents) if info else []
            self._dependents_cache[package_id] = cached
        return cached

    def is_used(self, package_id: str) -> bool:
        return bool(self.importers_of(package_id))

    def get_info(self, package_id: str) -> Optional[PackageDependencyInfo]:
        return self._info.get(package_id)

    def instances(self) -> List[str]:
        return sorted(self._info)

    def name_of(self, package_id: str) -> Optional[str]:
        return self._names.get(package_id)

    def version_of(self, package_id: str) -> Optional[str]:
        return self._versions.get(package_id)

    def instances_by_name(self) -> Dict[str, List[str]]:
        """Group indexed instance ids by package name."""
        grouped: Dict[str, List[str]] = {}
        for package_id in sorted(self._info):
            grouped.setdefault(self._names[package_id], []).append(package_id)
        return {name: grouped[name] for name in sorted(grouped)}

    def __contains__(self, package_id: str) -> bool:
        return package_id in self._info

    def __len__(self) -> int:
        return len(self._info)
