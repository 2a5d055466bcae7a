"""Duplicate instance and hoisting conflict detection."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from .errors import DependencyPathNotFoundError, ModulesManifestError, PackageIdParseError
from .formatters import OutputFormatter
from .matcher import matches_any_wildcard, matches_wildcard
from .models import (
    DEPENDENCY_TYPE_PRIORITY,
    DependencyInfo,
    DependencyPathStep,
    DuplicateGroup,
    DuplicateInstance,
    DuplicatesOptions,
    Lockfile,
    PerProjectGroup,
    ProjectInstance,
    ProjectPackageDuplicate,
)
from .modules_yaml import detect_hoist_conflicts, get_hoisted_versions, load_modules_yaml
from .package_id import PackageIdParser
from .tracker import DependencyTracker
from .tree_builder import DEFAULT_MAX_DEPTH

logger = logging.getLogger(__name__)


@dataclass
class HoistState:
    """What node_modules/.modules.yaml says was hoisted."""

    versions: Dict[str, Set[str]] = field(default_factory=dict)
    slot_conflicts: Set[str] = field(default_factory=set)


class DuplicatesAnalyzer:
    """Finds packages resolved to more than one instance."""

    def __init__(self, lockfile: Lockfile, hierarchy_provider=None):
        self.lockfile = lockfile
        self.hierarchy_provider = hierarchy_provider
        self._trackers: Dict[int, DependencyTracker] = {}

    def get_tracker(self, max_depth: int = DEFAULT_MAX_DEPTH) -> DependencyTracker:
        tracker = self._trackers.get(max_depth)
        if tracker is None:
            tracker = DependencyTracker(
                self.lockfile, max_depth=max_depth, hierarchy_provider=self.hierarchy_provider
            )
            self._trackers[max_depth] = tracker
        return tracker

    def find_duplicates(self, options: Optional[DuplicatesOptions] = None) -> List[DuplicateGroup]:
        """
        Group instances by package name across all projects.

        A group is reported when it has more than one instance, or always with
        show_all. With check_hoist and no package filter, only groups whose
        lockfile instances disagree with what is hoisted are reported.

        Args:
            options: Filters and switches; defaults to DuplicatesOptions()

        Returns:
            Groups sorted by package name, instances sorted by id
        """
        options = options or DuplicatesOptions()
        tracker = self.get_tracker(options.max_depth)
        index = tracker.index
        omitted = options.omitted_sections()
        project_filter = set(options.project_filter) if options.project_filter else None
        hoist = self.load_hoist_state(options) if options.check_hoist else None

        groups: List[DuplicateGroup] = []
        for name, package_ids in index.instances_by_name().items():
            if options.package_filter and not matches_any_wildcard(name, options.package_filter):
                continue

            instances: List[DuplicateInstance] = []
            for package_id in package_ids:
                projects = index.importers_of(package_id)
                if project_filter is not None:
                    projects = [p for p in projects if p in project_filter]
                if not projects:
                    continue
                dependency_type = self._get_dependency_type(name, package_id, projects)
                if dependency_type in omitted:
                    continue
                instances.append(DuplicateInstance(
                    id=package_id,
                    version=index.version_of(package_id),
                    projects=list(projects),
                    dependency_type=dependency_type,
                ))

            if not instances:
                continue

            lockfile_count = len(instances)
            group = DuplicateGroup(package_name=name, instances=instances)
            conflict = self._apply_hoist_state(group, hoist) if hoist is not None else False

            if self._should_report(lockfile_count, conflict, options, hoist is not None):
                groups.append(group)

        logger.info(f"Found {len(groups)} duplicated packages")
        return groups

    def find_per_project_duplicates(self, options: Optional[DuplicatesOptions] = None) -> List[PerProjectGroup]:
        """Group instances by project, then by package name."""
        options = options or DuplicatesOptions()
        tracker = self.get_tracker(options.max_depth)
        index = tracker.index
        omitted = options.omitted_sections()
        project_filter = set(options.project_filter) if options.project_filter else None
        hoist = self.load_hoist_state(options) if options.check_hoist else None

        by_importer: Dict[str, Dict[str, List[str]]] = {}
        for name, package_ids in index.instances_by_name().items():
            if options.package_filter and not matches_any_wildcard(name, options.package_filter):
                continue
            for package_id in package_ids:
                for project in index.importers_of(package_id):
                    if project_filter is not None and project not in project_filter:
                        continue
                    by_importer.setdefault(project, {}).setdefault(name, []).append(package_id)

        results: List[PerProjectGroup] = []
        for importer_path in sorted(by_importer):
            duplicates: List[ProjectPackageDuplicate] = []
            for name in sorted(by_importer[importer_path]):
                package_ids = by_importer[importer_path][name]
                if len(package_ids) < 2 and not options.show_all and hoist is None:
                    continue

                instances: List[ProjectInstance] = []
                for package_id in package_ids:
                    info = self.get_instance_dependency_info(tracker, importer_path, package_id)
                    if info.type_summary in omitted:
                        continue
                    instances.append(ProjectInstance(
                        id=package_id,
                        version=index.version_of(package_id),
                        dependency_info=info,
                    ))
                if not instances:
                    continue

                duplicate = ProjectPackageDuplicate(package_name=name, instances=instances)
                distinct_versions = len({instance.version for instance in instances})
                mismatch = self._apply_project_hoist_state(duplicate, hoist) if hoist is not None else False

                if distinct_versions > 1 or options.show_all or mismatch:
                    duplicates.append(duplicate)

            if duplicates:
                results.append(PerProjectGroup(importer_path=importer_path, duplicate_packages=duplicates))

        logger.info(f"Found duplicates in {len(results)} projects")
        return results

    def get_instance_dependency_info(self, tracker: DependencyTracker, importer_path: str, package_id: str) -> DependencyInfo:
        """
        Explain how a project reaches an instance.

        An instance the index attributes to the project but no path reaches
        is reported with a single 'transitive' step.
        """
        try:
            path = tracker.get_dependency_path(importer_path, package_id)
        except DependencyPathNotFoundError:
            logger.debug(f"No path from {importer_path} to {package_id}")
            return DependencyInfo(
                type_summary='transitive',
                path=[DependencyPathStep(package=package_id, type='transitive', specifier='unknown')],
            )
        return DependencyInfo(type_summary=self._type_summary_from_path(path), path=path)

    def enrich_with_all_paths(self, groups: List[PerProjectGroup], max_depth: int = DEFAULT_MAX_DEPTH) -> List[PerProjectGroup]:
        """Attach every path (diamond variants) to per-project instances."""
        tracker = self.get_tracker(max_depth)
        for group in groups:
            for duplicate in group.duplicate_packages:
                for instance in duplicate.instances:
                    if instance.dependency_info is None:
                        continue
                    paths = tracker.get_all_dependency_paths(group.importer_path, instance.id)
                    if len(paths) > 1:
                        instance.dependency_info.all_paths = paths
        return groups

    def enrich_with_dependency_paths(self, groups: List[DuplicateGroup], max_depth: int = DEFAULT_MAX_DEPTH) -> List[DuplicateGroup]:
        """Attach per-project path information to global duplicate instances."""
        tracker = self.get_tracker(max_depth)
        for group in groups:
            for instance in group.instances:
                if not instance.projects:
                    continue
                instance.dependency_info = {}
                for project in instance.projects:
                    info = self.get_instance_dependency_info(tracker, project, instance.id)
                    paths = tracker.get_all_dependency_paths(project, instance.id)
                    if len(paths) > 1:
                        info.all_paths = paths
                    instance.dependency_info[project] = info
        return groups

    def packages_exist(self, names: List[str]) -> Dict[str, List[str]]:
        """Split package names (or globs) into those present in the lockfile and those missing."""
        known = set(self.get_tracker().index.instances_by_name())
        for key in self.lockfile.packages:
            try:
                known.add(PackageIdParser.get_name(key))
            except PackageIdParseError as e:
                logger.debug(f"Skipping package key: {e}")
        for importer in self.lockfile.importers.values():
            known.update(dep.name for dep in importer.iter_dependencies())

        existing: List[str] = []
        missing: List[str] = []
        for name in names:
            if any(matches_wildcard(candidate, name) for candidate in known):
                existing.append(name)
            else:
                missing.append(name)
        return {'existing': existing, 'missing': missing}

    def load_hoist_state(self, options: DuplicatesOptions) -> Optional[HoistState]:
        """Read the hoisting manifest; None (with a warning) when it is unavailable."""
        modules_dir = options.modules_dir
        if modules_dir is None:
            base = Path(self.lockfile.path).parent if self.lockfile.path else Path.cwd()
            modules_dir = str(base / 'node_modules')

        try:
            manifest = load_modules_yaml(modules_dir)
        except ModulesManifestError as e:
            logger.warning(f"Hoist check disabled: {e}")
            return None

        conflicts = detect_hoist_conflicts(manifest, options.package_filter)
        return HoistState(
            versions=get_hoisted_versions(manifest),
            slot_conflicts={conflict.package_name for conflict in conflicts},
        )

    def format_results(
        self,
        groups: List[DuplicateGroup],
        output_format: str = 'tree',
        show_dependency_trees: bool = False,
        deps_depth: Optional[int] = None,
    ) -> str:
        return OutputFormatter.format_duplicates(groups, output_format, show_dependency_trees, deps_depth)

    def format_per_project_results(
        self,
        groups: List[PerProjectGroup],
        output_format: str = 'tree',
        show_dependency_trees: bool = False,
        deps_depth: Optional[int] = None,
    ) -> str:
        return OutputFormatter.format_per_project_duplicates(groups, output_format, show_dependency_trees, deps_depth)

    @staticmethod
    def _should_report(lockfile_count: int, conflict: bool, options: DuplicatesOptions, hoist_checked: bool) -> bool:
        if options.show_all:
            return True
        if hoist_checked and not options.package_filter:
            return conflict
        return lockfile_count > 1 or conflict

    @staticmethod
    def _apply_hoist_state(group: DuplicateGroup, hoist: HoistState) -> bool:
        """Mark hoisted instances, add hoisted-only versions, and report a conflict."""
        name = group.package_name
        hoisted = hoist.versions.get(name, set())
        group.hoisted_versions = sorted(hoisted)
        conflict = name in hoist.slot_conflicts
        if hoisted:
            present = set()
            for instance in group.instances:
                base = PackageIdParser.base_version(instance.version)
                instance.hoisted = base in hoisted
                present.add(base)
                if not instance.hoisted:
                    conflict = True
            for version in sorted(hoisted - present):
                group.instances.append(DuplicateInstance(
                    id=f"{name}@{version}",
                    version=version,
                    projects=[],
                    dependency_type='hoisted',
                    hoisted=True,
                ))
        group.hoist_conflict = conflict
        return conflict

    @staticmethod
    def _apply_project_hoist_state(duplicate: ProjectPackageDuplicate, hoist: HoistState) -> bool:
        hoisted = hoist.versions.get(duplicate.package_name, set())
        if not hoisted:
            return False
        duplicate.hoisted_versions = sorted(hoisted)
        mismatch = False
        present = set()
        for instance in duplicate.instances:
            base = PackageIdParser.base_version(instance.version)
            instance.hoisted = base in hoisted
            present.add(base)
            if not instance.hoisted:
                mismatch = True
        if mismatch:
            for version in sorted(hoisted - present):
                duplicate.instances.append(ProjectInstance(
                    id=f"{duplicate.package_name}@{version}",
                    version=version,
                    hoisted=True,
                ))
        return mismatch

    def _get_dependency_type(self, name: str, package_id: str, projects: List[str]) -> str:
        """Strongest way any of the projects declares this exact instance."""
        types = set()
        for project in projects:
            importer = self.lockfile.importers.get(project)
            declared = []
            if importer is not None:
                declared = [
                    dep.dependency_type for dep in importer.iter_dependencies()
                    if not dep.is_link and self._declares_instance(dep.name, dep.version, name, package_id)
                ]
            types.update(declared or ['transitive'])

        for dependency_type in DEPENDENCY_TYPE_PRIORITY:
            if dependency_type in types:
                return dependency_type
        return 'transitive'

    @staticmethod
    def _declares_instance(dep_name: str, dep_version: str, name: str, package_id: str) -> bool:
        if dep_version == package_id:
            return True  # npm alias
        if dep_name != name:
            return False
        return package_id in (f"{name}@{dep_version}", f"{name}@{PackageIdParser.base_version(dep_version)}")

    @staticmethod
    def _type_summary_from_path(path: List[DependencyPathStep]) -> str:
        """The kind of the declaration that pulls the instance in: the step after the last link."""
        last_link = -1
        for i, step in enumerate(path):
            if step.specifier.startswith('link:'):
                last_link = i
        if 0 <= last_link < len(path) - 1:
            return path[last_link + 1].type
        return path[0].type if path else 'transitive'
