"""Output formatters for search results and duplicate reports."""

import json
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from packageurl import PackageURL
from cyclonedx.model.bom import Bom
from cyclonedx.model.component import Component, ComponentType
from cyclonedx.output.json import JsonV1Dot6

from .models import (
    DEPENDENCY_SECTIONS,
    DependencyPathStep,
    DuplicateGroup,
    PerProjectGroup,
    SearchResult,
)
from .package_id import PackageIdParser

logger = logging.getLogger(__name__)

TYPE_CODES = {
    'devDependencies': 'dev',
    'optionalDependencies': 'optional',
    'peerDependencies': 'peer',
}

# Order of result groups in tree output
SEARCH_TYPE_ORDER = DEPENDENCY_SECTIONS + ('packages', 'snapshots')

ELLIPSIS_STEP = DependencyPathStep(package='...', type='', specifier='')

StepKey = Tuple[str, str]


class OutputFormatter:
    """Formatter for search results, duplicate reports and dependency paths."""

    # Search results

    @staticmethod
    def format_as_tree(results: Sequence[SearchResult]) -> str:
        """Group results by package, then by the lockfile section they were found in."""
        if not results:
            return "No matching packages found.\n"

        by_package: Dict[str, List[SearchResult]] = {}
        for result in results:
            by_package.setdefault(result.package_name, []).append(result)

        lines: List[str] = []
        for package_name in sorted(by_package):
            package_results = by_package[package_name]
            variant_labels = OutputFormatter._peer_variant_labels(package_results)

            by_type: Dict[str, List[SearchResult]] = {}
            for result in package_results:
                by_type.setdefault(result.type, []).append(result)
            types = sorted(
                by_type,
                key=lambda t: (SEARCH_TYPE_ORDER.index(t) if t in SEARCH_TYPE_ORDER else len(SEARCH_TYPE_ORDER), t)
            )

            lines.append(package_name)
            for i, result_type in enumerate(types):
                is_last_type = i == len(types) - 1
                lines.append(f"{'└── ' if is_last_type else '├── '}{result_type}")
                child_prefix = '    ' if is_last_type else '│   '
                entries = by_type[result_type]
                for j, result in enumerate(entries):
                    connector = '└── ' if j == len(entries) - 1 else '├── '
                    label = OutputFormatter._search_label(result, variant_labels)
                    lines.append(f"{child_prefix}{connector}{label}")
            lines.append("")

        return '\n'.join(lines)

    @staticmethod
    def format_as_json(results: Sequence[SearchResult]) -> str:
        return json.dumps([result.to_dict() for result in results], indent=2) + '\n'

    @staticmethod
    def format_as_list(results: Sequence[SearchResult]) -> str:
        """One line per result: id - path > segments (specifier: x)."""
        lines = []
        for result in results:
            line = f"{result.package_id} - {' > '.join(result.path)}"
            if result.specifier is not None:
                line += f" (specifier: {result.specifier})"
            lines.append(line)
        return '\n'.join(lines) + '\n'

    @staticmethod
    def format_as_sbom(results: Sequence[SearchResult]) -> str:
        """Generate a CycloneDX SBOM of the distinct registry instances in the results."""
        from . import __version__

        bom = Bom()
        tool_component = Component(
            name='lockbuddy',
            version=__version__,
            type=ComponentType.APPLICATION,
            bom_ref=f"lockbuddy@{__version__}",
        )
        bom.metadata.tools.components.add(tool_component)

        instances = set()
        for result in results:
            version = result.version
            if not version or version.startswith(('link:', 'file:')):
                continue
            instances.add((result.package_name, PackageIdParser.base_version(version)))

        for name, version in sorted(instances):
            bom.components.add(OutputFormatter._package_to_component(name, version))

        outputter = JsonV1Dot6(bom)
        return outputter.output_as_string(indent=2) + '\n'

    @staticmethod
    def _package_to_component(name: str, version: str) -> Component:
        """Convert an npm package instance to a CycloneDX Component."""
        purl = OutputFormatter._build_purl(name, version)
        scope = PackageIdParser.get_scope(name)
        short_name = name.split('/', 1)[1] if scope else name
        return Component(
            name=short_name,
            group=scope,
            version=version,
            type=ComponentType.LIBRARY,
            purl=purl,
            bom_ref=purl.to_string(),
        )

    @staticmethod
    def _build_purl(name: str, version: str) -> PackageURL:
        """Build a Package URL (purl) for an npm package."""
        scope = PackageIdParser.get_scope(name)
        short_name = name.split('/', 1)[1] if scope else name
        return PackageURL(type='npm', namespace=scope, name=short_name, version=version)

    @staticmethod
    def _peer_variant_labels(results: Sequence[SearchResult]) -> Dict[str, int]:
        """Number peer-qualified variants that share a base version."""
        variants: Dict[str, set] = {}
        for result in results:
            if result.type not in ('packages', 'snapshots'):
                continue
            base = PackageIdParser.base_version(result.version)
            variants.setdefault(base, set()).add(result.version)

        labels: Dict[str, int] = {}
        for versions in variants.values():
            if len(versions) < 2:
                continue
            for n, version in enumerate(sorted(versions), start=1):
                labels[version] = n
        return labels

    @staticmethod
    def _search_label(result: SearchResult, variant_labels: Dict[str, int]) -> str:
        if result.path and result.path[0] == 'importers':
            return f"{result.parent}: {result.specifier} -> {result.version}"
        if result.type in ('packages', 'snapshots'):
            label = result.package_id
            if result.version in variant_labels:
                label += f" [{variant_labels[result.version]}]"
            return label
        return f"{result.parent} -> {result.version}"

    # Duplicate reports

    @staticmethod
    def format_duplicates(
        groups: Sequence[DuplicateGroup],
        output_format: str = 'tree',
        show_dependency_trees: bool = False,
        deps_depth: Optional[int] = None,
    ) -> str:
        """Render duplicates found across projects."""
        if output_format == 'json':
            return json.dumps([group.to_dict() for group in groups], indent=2) + '\n'

        if not groups:
            return "No duplicate packages found.\n"

        blocks: List[str] = []
        for group in groups:
            count = len(group.instances)
            lines = [f"{group.package_name} has {count} instance{'s' if count != 1 else ''}:"]
            if group.hoisted_versions is not None:
                lines.append(f"  Hoisted: {', '.join(group.hoisted_versions) or 'none'}")

            labels = OutputFormatter._version_labels([instance.id for instance in group.instances])
            for instance in group.instances:
                marker = ' [hoisted]' if instance.hoisted else ''
                lines.append(f"  {instance.id} ({instance.dependency_type}){marker}")
                if instance.projects:
                    lines.append(f"    Used by: {', '.join(instance.projects)}")
                if show_dependency_trees and instance.dependency_info:
                    for project, info in instance.dependency_info.items():
                        lines.append(f"    {project}:")
                        paths = info.all_paths or [info.path]
                        lines.extend(OutputFormatter.format_dependency_paths(
                            paths, indent='      ', deps_depth=deps_depth, version_labels=labels
                        ))
            blocks.append('\n'.join(lines))

        return '\n\n'.join(blocks) + '\n'

    @staticmethod
    def format_per_project_duplicates(
        groups: Sequence[PerProjectGroup],
        output_format: str = 'tree',
        show_dependency_trees: bool = False,
        deps_depth: Optional[int] = None,
    ) -> str:
        """Render duplicates grouped by project."""
        if output_format == 'json':
            return json.dumps([group.to_dict() for group in groups], indent=2) + '\n'

        if not groups:
            return "No duplicate packages found.\n"

        blocks: List[str] = []
        for group in groups:
            lines = [f"{group.importer_path}:"]
            for duplicate in group.duplicate_packages:
                count = len(duplicate.instances)
                lines.append(f"  {duplicate.package_name} has {count} instance{'s' if count != 1 else ''}:")
                if duplicate.hoisted_versions is not None:
                    lines.append(f"    Hoisted: {', '.join(duplicate.hoisted_versions) or 'none'}")

                labels = OutputFormatter._version_labels([instance.id for instance in duplicate.instances])
                for instance in duplicate.instances:
                    marker = ' [hoisted]' if instance.hoisted else ''
                    lines.append(f"    {instance.id} ({instance.dependency_type}){marker}")
                    if show_dependency_trees and instance.dependency_info is not None:
                        paths = instance.dependency_info.all_paths or [instance.dependency_info.path]
                        lines.extend(OutputFormatter.format_dependency_paths(
                            paths, indent='      ', deps_depth=deps_depth, version_labels=labels
                        ))
            blocks.append('\n'.join(lines))

        return '\n\n'.join(blocks) + '\n'

    # Dependency paths

    @staticmethod
    def format_dependency_paths(
        paths: Sequence[List[DependencyPathStep]],
        indent: str = '',
        deps_depth: Optional[int] = None,
        version_labels: Optional[Dict[str, int]] = None,
    ) -> List[str]:
        """
        Merge root-to-target paths into one tree.

        Paths are sorted by their (package, type) steps; a prefix shared with
        an earlier path is printed once. When the leaves name more than one
        instance, each leaf gets a '[n]' label so variants can be told apart.

        Args:
            paths: Paths from a project root to the target
            indent: Prefix for every line
            deps_depth: Longer paths keep their first steps, '...', and the target
            version_labels: Leaf id -> label; computed from the leaves when None

        Returns:
            Rendered lines
        """
        truncated = [OutputFormatter._truncate_path(path, deps_depth) for path in paths if path]
        keys = sorted([OutputFormatter._step_key(step) for step in path] for path in truncated)
        by_key = {tuple(OutputFormatter._step_key(s) for s in p): p for p in truncated}
        ordered = [by_key[tuple(key)] for key in keys]

        if version_labels is None:
            version_labels = OutputFormatter._version_labels([path[-1].package for path in ordered])

        lines: List[str] = []
        emitted = set()
        for i, path in enumerate(ordered):
            for depth, step in enumerate(path):
                prefix = tuple(keys[i][:depth + 1])
                if prefix in emitted:
                    continue
                emitted.add(prefix)

                bars = ''.join(
                    '│   ' if OutputFormatter._has_later_sibling(keys, i, d) else '    '
                    for d in range(depth)
                )
                branch = '├' if OutputFormatter._has_later_sibling(keys, i, depth) else '└'
                code = OutputFormatter._type_code(step)
                middle = f"({code})" if code else '─'
                label = step.package
                if depth == len(path) - 1 and step.package in version_labels:
                    label += f" [{version_labels[step.package]}]"
                lines.append(f"{indent}{bars}{branch}─{middle}─ {label}")
        return lines

    @staticmethod
    def _step_key(step: DependencyPathStep) -> StepKey:
        return (step.package, step.type)

    @staticmethod
    def _has_later_sibling(keys: List[List[StepKey]], index: int, depth: int) -> bool:
        """True if a later path shares this path's prefix above depth but differs at depth."""
        prefix = keys[index][:depth]
        own = keys[index][depth]
        for other in keys[index + 1:]:
            if len(other) > depth and other[:depth] == prefix and other[depth] != own:
                return True
        return False

    @staticmethod
    def _truncate_path(path: List[DependencyPathStep], deps_depth: Optional[int]) -> List[DependencyPathStep]:
        if not deps_depth or len(path) <= deps_depth:
            return list(path)
        keep = max(deps_depth - 1, 1)
        return list(path[:keep]) + [ELLIPSIS_STEP, path[-1]]

    @staticmethod
    def _type_code(step: DependencyPathStep) -> str:
        if step.specifier.startswith('link:'):
            return 'link'
        return TYPE_CODES.get(step.type, '')

    @staticmethod
    def _version_labels(package_ids: Sequence[str]) -> Dict[str, int]:
        """Label distinct ids 1..n in sorted order; no labels for a single id."""
        distinct = sorted(set(package_ids))
        if len(distinct) < 2:
            return {}
        return {package_id: n for n, package_id in enumerate(distinct, start=1)}
