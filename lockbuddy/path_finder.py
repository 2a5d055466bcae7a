"""Root-to-instance path search over one project's tree."""

import logging
from typing import Callable, List, Mapping

from .errors import PackageIdParseError, ProjectNotFoundError
from .models import DependencyPathStep, DependencyTreeNode
from .package_id import PackageIdParser

logger = logging.getLogger(__name__)

NodeMatcher = Callable[[DependencyTreeNode], bool]


def node_to_step(node: DependencyTreeNode) -> DependencyPathStep:
    return DependencyPathStep(
        package=node.package_id,
        type=node.dependency_type,
        specifier=node.specifier if node.specifier is not None else node.version,
    )


class PathFinder:
    """Finds why a project contains a package instance."""

    def __init__(self, trees: Mapping[str, List[DependencyTreeNode]]):
        self.trees = trees

    def first_path(self, project: str, target_id: str) -> List[DependencyPathStep]:
        """
        Return the first pre-order path from the project root to the target.

        An exact id match (including the id followed by a peer suffix) is
        preferred. Only when no node matches exactly does a node with the
        same package name count.

        Raises:
            ProjectNotFoundError: if no tree was built for the project
        """
        roots = self._get_roots(project)
        for matcher in (self._exact_matcher(target_id), self._name_matcher(target_id)):
            path = self._find_first(roots, matcher, [])
            if path:
                return path
        return []

    def all_paths(self, project: str, target_id: str) -> List[List[DependencyPathStep]]:
        """Return every path from the project root to a matching node."""
        roots = self._get_roots(project)
        for matcher in (self._exact_matcher(target_id), self._name_matcher(target_id)):
            paths: List[List[DependencyPathStep]] = []
            self._collect_all(roots, matcher, [], paths)
            if paths:
                return paths
        return []

    def _get_roots(self, project: str) -> List[DependencyTreeNode]:
        roots = self.trees.get(project)
        if roots is None:
            raise ProjectNotFoundError(project)
        return roots

    @staticmethod
    def _exact_matcher(target_id: str) -> NodeMatcher:
        qualified_prefix = target_id + '('

        def matches(node: DependencyTreeNode) -> bool:
            package_id = node.package_id
            return package_id == target_id or package_id.startswith(qualified_prefix)
        return matches

    @staticmethod
    def _name_matcher(target_id: str) -> NodeMatcher:
        try:
            target_name = PackageIdParser.get_name(target_id)
        except PackageIdParseError:
            target_name = target_id

        def matches(node: DependencyTreeNode) -> bool:
            return not node.is_link and node.name == target_name
        return matches

    def _find_first(self, nodes: List[DependencyTreeNode], matcher: NodeMatcher, current: List[DependencyPathStep]) -> List[DependencyPathStep]:
        on_path = {step.package for step in current}
        for node in nodes:
            if node.package_id in on_path:
                continue
            path = current + [node_to_step(node)]
            if matcher(node):
                return path
            found = self._find_first(node.children, matcher, path)
            if found:
                return found
        return []

    def _collect_all(
        self,
        nodes: List[DependencyTreeNode],
        matcher: NodeMatcher,
        current: List[DependencyPathStep],
        paths: List[List[DependencyPathStep]],
    ) -> None:
        on_path = {step.package for step in current}
        for node in nodes:
            if node.package_id in on_path:
                continue
            path = current + [node_to_step(node)]
            if matcher(node):
                paths.append(path)
            self._collect_all(node.children, matcher, path, paths)
