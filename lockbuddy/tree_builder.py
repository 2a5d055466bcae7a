"""Building per-project dependency trees from lockfile data."""

import logging
from typing import Dict, List, Optional, Tuple

from .errors import HierarchyUnavailableError, PackageIdParseError, ProjectNotFoundError
from .links import (
    ROOT_PROJECT,
    extract_importer_path_from_file_version,
    find_importer_by_file_path,
    resolve_link_path,
)
from .models import BuildWarning, DependencyTreeNode, Importer, Lockfile
from .package_id import PackageIdParser

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10

# Sections an injected package brings along when its snapshot is missing
INJECTED_SECTIONS = ('dependencies', 'optionalDependencies', 'peerDependencies')


class DependencyTreeBuilder:
    """
    Builds one dependency tree per workspace project.

    Workspace links are kept as explicit link nodes (version 'link:<project>')
    whose children are the linked project's own declarations. Package nodes
    are expanded through the snapshots table. Within one direct entry of a
    project, an instance that was already expanded at the same or a shallower
    depth appears again without children, and a link back into a project
    that is already being expanded yields a childless link node.
    """

    def __init__(self, lockfile: Lockfile, max_depth: int = DEFAULT_MAX_DEPTH, hierarchy_provider=None):
        """
        Args:
            lockfile: Parsed lockfile
            max_depth: Nodes at this depth are emitted without children
            hierarchy_provider: Optional object with get_hierarchy() returning
                verified trees keyed by project path
        """
        self.lockfile = lockfile
        self.max_depth = max_depth
        self.hierarchy_provider = hierarchy_provider
        self.warnings: List[BuildWarning] = []

    def build_trees(self) -> Dict[str, List[DependencyTreeNode]]:
        """Build the trees of every project in the lockfile."""
        if self.hierarchy_provider is not None:
            trees = self._get_verified_hierarchy()
            if trees:
                logger.info(f"Using verified dependency hierarchy for {len(trees)} projects")
                return self.enrich_with_linked_workspace_deps(trees)
            logger.info("Verified hierarchy is empty, building trees from the lockfile")

        trees: Dict[str, List[DependencyTreeNode]] = {}
        for importer_path in self.lockfile.importers:
            trees[importer_path] = self.build_importer_tree(importer_path)
        logger.info(f"Built dependency trees for {len(trees)} projects")
        return trees

    def build_importer_tree(self, importer_path: str) -> List[DependencyTreeNode]:
        """Build the tree of one project from lockfile data only."""
        if importer_path not in self.lockfile.importers:
            raise ProjectNotFoundError(importer_path)
        return self._build_importer_entries(importer_path, 0, frozenset([importer_path]))

    def enrich_with_linked_workspace_deps(
        self, trees: Dict[str, List[DependencyTreeNode]]
    ) -> Dict[str, List[DependencyTreeNode]]:
        """
        Add workspace links of injected (file:) packages to externally built trees.

        Installed layouts list an injected package's registry dependencies but
        not the workspace projects it links to, so those are appended here.
        """
        for importer_path, roots in trees.items():
            for node in roots:
                self._enrich_node(node, 0, frozenset([importer_path]))
        return trees

    def _enrich_node(self, node: DependencyTreeNode, depth: int, link_stack: frozenset) -> None:
        if node.version.startswith('file:'):
            self._append_injected_links(node, depth, link_stack)
        for child in node.children:
            self._enrich_node(child, depth + 1, link_stack)

    def _get_verified_hierarchy(self) -> Optional[Dict[str, List[DependencyTreeNode]]]:
        try:
            trees = self.hierarchy_provider.get_hierarchy()
        except HierarchyUnavailableError as e:
            logger.info(f"Verified hierarchy unavailable: {e}")
            return None
        if not trees or not any(trees.values()):
            return None
        return trees

    def _build_importer_entries(self, importer_path: str, depth: int, link_stack: frozenset) -> List[DependencyTreeNode]:
        importer = self.lockfile.importers[importer_path]
        nodes: List[DependencyTreeNode] = []
        for dep in importer.iter_dependencies():
            if dep.is_link:
                node = self._build_link_node(
                    importer_path, dep.name, dep.version, dep.dependency_type, depth, link_stack
                )
            else:
                # Each direct entry gets its own visited map
                node = self._build_package_node(
                    importer_path, dep.name, dep.version, dep.dependency_type, dep.specifier,
                    depth, {}, link_stack
                )
            if node is not None:
                nodes.append(node)
        return nodes

    def _build_link_node(
        self,
        source_importer: str,
        name: str,
        version: str,
        dependency_type: str,
        depth: int,
        link_stack: frozenset,
    ) -> Optional[DependencyTreeNode]:
        target = resolve_link_path(source_importer, version)
        if target is None or target not in self.lockfile.importers:
            self._warn(
                'unresolvable-link',
                f"Cannot resolve {name} ({version}) declared by {source_importer}",
                source_importer,
                level=logging.WARNING,
            )
            return None

        node = DependencyTreeNode(
            name=name,
            version=f"link:{target}",
            dependency_type=dependency_type,
            specifier=f"link:{target}",
        )
        if target in link_stack:
            logger.debug(f"Link cycle: {source_importer} -> {target} is already being expanded")
            return node
        if depth >= self.max_depth:
            return node

        node.children = self._build_importer_entries(target, depth + 1, link_stack | {target})
        return node

    def _build_package_node(
        self,
        importer_path: str,
        name: str,
        version: str,
        dependency_type: str,
        specifier: Optional[str],
        depth: int,
        visited: Dict[str, int],
        link_stack: frozenset,
        link_source: Optional[str] = None,
    ) -> Optional[DependencyTreeNode]:
        if version.startswith('link:'):
            return self._build_link_node(
                link_source or importer_path, name, version, dependency_type, depth, link_stack
            )

        real_name, real_version, alias = self._resolve_alias(name, version)
        node = DependencyTreeNode(
            name=real_name,
            version=real_version,
            dependency_type=dependency_type,
            specifier=specifier if specifier is not None else version,
            alias=alias,
        )

        package_id = node.package_id
        # Revisit only when reached closer to the root than the earlier expansion
        expanded_at = visited.get(package_id)
        if (expanded_at is not None and expanded_at <= depth) or depth >= self.max_depth:
            return node
        visited[package_id] = depth

        snapshot = self.lockfile.snapshots.get(package_id)
        if snapshot is not None:
            edges: List[Tuple[str, str, str]] = [
                (dep_name, dep_version, 'dependencies')
                for dep_name, dep_version in snapshot.dependencies.items()
            ]
            edges.extend(
                (dep_name, dep_version, 'optionalDependencies')
                for dep_name, dep_version in snapshot.optional_dependencies.items()
            )
            edge_source = self._edge_link_source(real_version)
            for dep_name, dep_version, edge_type in edges:
                child = self._build_package_node(
                    importer_path, dep_name, dep_version, edge_type, None, depth + 1, visited, link_stack,
                    link_source=edge_source,
                )
                if child is not None:
                    node.children.append(child)
        elif not real_version.startswith('file:'):
            node.is_missing = True
            self._warn('missing-snapshot', f"No snapshot for {package_id}", importer_path)

        if real_version.startswith('file:'):
            self._append_injected_links(node, depth, link_stack, expand_all=snapshot is None, visited=visited)

        return node

    def _append_injected_links(
        self,
        node: DependencyTreeNode,
        depth: int,
        link_stack: frozenset,
        expand_all: bool = False,
        visited: Optional[Dict[str, int]] = None,
    ) -> None:
        """Attach an injected package's workspace links (and, without a snapshot, all its entries)."""
        file_path = extract_importer_path_from_file_version(node.version)
        origin = find_importer_by_file_path(file_path, self.lockfile.importers) if file_path else None
        if origin is None:
            self._warn('missing-importer', f"No project found for injected package {node.package_id}")
            return
        if origin in link_stack or depth >= self.max_depth:
            return

        origin_importer: Importer = self.lockfile.importers[origin]
        existing = {child.name for child in node.children}
        stack = link_stack | {origin}
        for section_name in INJECTED_SECTIONS:
            for dep in origin_importer.section(section_name).values():
                if dep.name in existing:
                    continue
                if dep.is_link:
                    child = self._build_link_node(origin, dep.name, dep.version, dep.dependency_type, depth + 1, stack)
                elif expand_all:
                    child = self._build_package_node(
                        origin, dep.name, dep.version, dep.dependency_type, dep.specifier,
                        depth + 1, visited if visited is not None else {}, stack
                    )
                else:
                    continue
                if child is not None:
                    node.children.append(child)
                    existing.add(dep.name)

    def _edge_link_source(self, version: str) -> str:
        """Project that link: edges of a snapshot are relative to."""
        file_path = extract_importer_path_from_file_version(version)
        if file_path:
            origin = find_importer_by_file_path(file_path, self.lockfile.importers)
            if origin is not None:
                return origin
        return ROOT_PROJECT

    def _resolve_alias(self, name: str, version: str) -> Tuple[str, str, Optional[str]]:
        """Map an aliased edge (name -> 'real-name@1.2.3') onto the real package."""
        candidate = f"{name}@{version}"
        if candidate in self.lockfile.snapshots or candidate in self.lockfile.packages:
            return name, version, None
        if version in self.lockfile.snapshots or version in self.lockfile.packages:
            try:
                parsed = PackageIdParser.parse(version)
            except PackageIdParseError:
                return name, version, None
            if parsed.version:
                return parsed.name, version[len(parsed.name) + 1:], name
        return name, version, None

    def _warn(self, kind: str, message: str, importer: Optional[str] = None, level: int = logging.DEBUG) -> None:
        logger.log(level, message)
        self.warnings.append(BuildWarning(kind=kind, message=message, importer=importer))
