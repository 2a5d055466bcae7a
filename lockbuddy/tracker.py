"""Dependency tracking facade over trees, index and path search."""

import logging
from typing import Dict, List, Optional

from .dependency_index import DependencyIndex
from .errors import DependencyPathNotFoundError, ProjectNotFoundError
from .links import collect_linked_dependencies
from .models import (
    BuildWarning,
    DependencyPathStep,
    DependencyTreeNode,
    Importer,
    LinkedDependencyInfo,
    Lockfile,
)
from .path_finder import PathFinder
from .tree_builder import DEFAULT_MAX_DEPTH, DependencyTreeBuilder

logger = logging.getLogger(__name__)


class DependencyTracker:
    """
    Answers which projects use an instance and how they reach it.

    Trees and indices are built on first use and reused for the lifetime of
    the tracker.
    """

    def __init__(self, lockfile: Lockfile, max_depth: int = DEFAULT_MAX_DEPTH, hierarchy_provider=None):
        self.lockfile = lockfile
        self.max_depth = max_depth
        self.hierarchy_provider = hierarchy_provider
        self._builder: Optional[DependencyTreeBuilder] = None
        self._trees: Optional[Dict[str, List[DependencyTreeNode]]] = None
        self._index: Optional[DependencyIndex] = None
        self._path_finder: Optional[PathFinder] = None
        self._linked: Optional[Dict[str, List[LinkedDependencyInfo]]] = None

    def _ensure_initialized(self) -> None:
        if self._trees is not None:
            return
        self._builder = DependencyTreeBuilder(
            self.lockfile, max_depth=self.max_depth, hierarchy_provider=self.hierarchy_provider
        )
        # Every tree is complete before the index reads any of them
        trees = self._builder.build_trees()
        self._index = DependencyIndex(trees)
        self._path_finder = PathFinder(trees)
        self._linked = collect_linked_dependencies(self.lockfile.importers)
        self._trees = trees
        if self._builder.warnings:
            logger.info(f"{len(self._builder.warnings)} warnings while building dependency trees")

    @property
    def index(self) -> DependencyIndex:
        self._ensure_initialized()
        return self._index

    @property
    def warnings(self) -> List[BuildWarning]:
        self._ensure_initialized()
        return list(self._builder.warnings)

    def get_dependency_trees(self) -> Dict[str, List[DependencyTreeNode]]:
        self._ensure_initialized()
        return self._trees

    def get_importers_for_package(self, package_id: str) -> List[str]:
        return self.index.importers_of(package_id)

    def get_direct_dependents_for_package(self, package_id: str) -> List[str]:
        return self.index.direct_dependents_of(package_id)

    def is_package_used(self, package_id: str) -> bool:
        return self.index.is_used(package_id)

    def get_importer_data(self, importer_path: str) -> Importer:
        importer = self.lockfile.importers.get(importer_path)
        if importer is None:
            raise ProjectNotFoundError(importer_path)
        return importer

    def get_importers(self) -> List[str]:
        return sorted(self.lockfile.importers)

    def get_linked_dependencies(self, importer_path: Optional[str] = None) -> List[LinkedDependencyInfo]:
        """Workspace links declared by one project, or by all projects."""
        self._ensure_initialized()
        if importer_path is not None:
            return list(self._linked.get(importer_path, []))
        return [link for links in self._linked.values() for link in links]

    def get_dependency_path(self, importer_path: str, package_id: str) -> List[DependencyPathStep]:
        """
        First path from a project to an instance.

        Raises:
            ProjectNotFoundError: if the project has no tree
            DependencyPathNotFoundError: if the tree holds no matching node
        """
        self._ensure_initialized()
        path = self._path_finder.first_path(importer_path, package_id)
        if not path:
            raise DependencyPathNotFoundError(importer_path, package_id)
        return path

    def get_all_dependency_paths(self, importer_path: str, package_id: str) -> List[List[DependencyPathStep]]:
        self._ensure_initialized()
        return self._path_finder.all_paths(importer_path, package_id)
