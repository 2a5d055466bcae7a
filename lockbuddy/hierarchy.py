"""Verified dependency hierarchy from the installed node_modules tree."""

import json
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import HierarchyUnavailableError
from .links import ROOT_PROJECT, resolve_link_path
from .models import DEPENDENCY_SECTIONS, DependencyTreeNode

logger = logging.getLogger(__name__)


class PnpmListClient:
    """Runs `pnpm list --recursive --json` and converts its output to dependency trees."""

    def __init__(self, workspace_dir: str, depth: int = 10, executable: str = 'pnpm', timeout: int = 120):
        self.workspace_dir = str(Path(workspace_dir).resolve())
        self.depth = depth
        self.executable = executable
        self.timeout = timeout

    @classmethod
    def is_available(cls, workspace_dir: str, executable: str = 'pnpm') -> bool:
        """True when pnpm is on PATH and the workspace has been installed."""
        return shutil.which(executable) is not None and (Path(workspace_dir) / 'node_modules').is_dir()

    def get_hierarchy(self) -> Dict[str, List[DependencyTreeNode]]:
        """
        Compute the installed dependency trees of every workspace project.

        Returns:
            Trees keyed by project path relative to the workspace root

        Raises:
            HierarchyUnavailableError: if pnpm fails or prints something unexpected
        """
        cmd = [self.executable, 'list', '--recursive', '--json', '--depth', str(self.depth)]
        logger.debug(f"Running {' '.join(cmd)} in {self.workspace_dir}")
        try:
            result = subprocess.run(
                cmd,
                cwd=self.workspace_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as e:
            raise HierarchyUnavailableError(f"pnpm list failed: {e}") from e

        if result.returncode != 0:
            raise HierarchyUnavailableError(
                f"pnpm list exited with {result.returncode}: {result.stderr.strip()}"
            )

        try:
            projects = json.loads(result.stdout or '[]')
        except json.JSONDecodeError as e:
            raise HierarchyUnavailableError(f"Cannot parse pnpm list output: {e}") from e

        if isinstance(projects, dict):
            projects = [projects]
        if not isinstance(projects, list):
            raise HierarchyUnavailableError("Unexpected pnpm list output")

        return self.convert(projects)

    def convert(self, projects: List[Dict[str, Any]]) -> Dict[str, List[DependencyTreeNode]]:
        """Convert decoded `pnpm list --json` output into trees keyed by project path."""
        raw_by_importer: Dict[str, Dict[str, Any]] = {}
        for project in projects:
            importer_path = self._importer_path(project.get('path'))
            raw_by_importer[importer_path] = project

        trees: Dict[str, List[DependencyTreeNode]] = {}
        for importer_path in raw_by_importer:
            trees[importer_path] = self._convert_project(
                importer_path, raw_by_importer, 0, frozenset([importer_path])
            )
        return trees

    def _convert_project(
        self,
        importer_path: str,
        raw_by_importer: Dict[str, Dict[str, Any]],
        depth: int,
        link_stack: frozenset,
    ) -> List[DependencyTreeNode]:
        project = raw_by_importer.get(importer_path) or {}
        nodes: List[DependencyTreeNode] = []
        for section_name in DEPENDENCY_SECTIONS:
            for name, info in (project.get(section_name) or {}).items():
                node = self._convert_node(
                    importer_path, name, info or {}, section_name, raw_by_importer, depth, link_stack
                )
                if node is not None:
                    nodes.append(node)
        return nodes

    def _convert_node(
        self,
        importer_path: str,
        name: str,
        info: Dict[str, Any],
        dependency_type: str,
        raw_by_importer: Dict[str, Dict[str, Any]],
        depth: int,
        link_stack: frozenset,
    ) -> Optional[DependencyTreeNode]:
        version = str(info.get('version', ''))

        if version.startswith('link:'):
            target = resolve_link_path(importer_path, version)
            if target is None:
                return None
            node = DependencyTreeNode(
                name=name,
                version=f"link:{target}",
                dependency_type=dependency_type,
                specifier=f"link:{target}",
            )
            # Linked projects are listed separately; expand them from their own entry
            if target in raw_by_importer and target not in link_stack and depth < self.depth:
                node.children = self._convert_project(
                    target, raw_by_importer, depth + 1, link_stack | {target}
                )
            return node

        node = DependencyTreeNode(
            name=str(info.get('from', name)),
            version=version,
            dependency_type=dependency_type,
            specifier=version,
            alias=name if info.get('from') and info.get('from') != name else None,
        )
        for edge_type in ('dependencies', 'optionalDependencies'):
            for child_name, child_info in (info.get(edge_type) or {}).items():
                child = self._convert_node(
                    importer_path, child_name, child_info or {}, edge_type,
                    raw_by_importer, depth + 1, link_stack
                )
                if child is not None:
                    node.children.append(child)
        return node

    def _importer_path(self, project_path: Optional[str]) -> str:
        if not project_path:
            return ROOT_PROJECT
        relative = os.path.relpath(project_path, self.workspace_dir).replace(os.sep, '/')
        return ROOT_PROJECT if relative in ('', '.') else relative
