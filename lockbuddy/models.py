"""Core data models for lockbuddy."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set

from .errors import MalformedLockfileError

logger = logging.getLogger(__name__)

# Importer sections in the order they are expanded
DEPENDENCY_SECTIONS = ('dependencies', 'devDependencies', 'optionalDependencies', 'peerDependencies')

# Short names accepted by --omit
OMIT_TYPE_SECTIONS = {
    'dev': 'devDependencies',
    'optional': 'optionalDependencies',
    'peer': 'peerDependencies',
}

# dependencies > optionalDependencies > peerDependencies > devDependencies > transitive
DEPENDENCY_TYPE_PRIORITY = (
    'dependencies',
    'optionalDependencies',
    'peerDependencies',
    'devDependencies',
    'transitive',
)


@dataclass
class ImporterDependency:
    """One direct declaration of a workspace project."""

    name: str
    specifier: str
    version: str  # resolved token: package version, link:<path> or file:<path>
    dependency_type: str = 'dependencies'

    @property
    def is_link(self) -> bool:
        return self.version.startswith('link:')

    @property
    def is_file(self) -> bool:
        return self.version.startswith('file:')


@dataclass
class Importer:
    """A workspace project and its direct declarations, grouped by section."""

    path: str
    dependencies: Dict[str, ImporterDependency] = field(default_factory=dict)
    dev_dependencies: Dict[str, ImporterDependency] = field(default_factory=dict)
    optional_dependencies: Dict[str, ImporterDependency] = field(default_factory=dict)
    peer_dependencies: Dict[str, ImporterDependency] = field(default_factory=dict)

    def section(self, name: str) -> Dict[str, ImporterDependency]:
        """Return the declarations of one lockfile section by its lockfile key."""
        return {
            'dependencies': self.dependencies,
            'devDependencies': self.dev_dependencies,
            'optionalDependencies': self.optional_dependencies,
            'peerDependencies': self.peer_dependencies,
        }[name]

    def iter_dependencies(self) -> Iterator[ImporterDependency]:
        for section_name in DEPENDENCY_SECTIONS:
            yield from self.section(section_name).values()

    def find(self, name: str) -> List[ImporterDependency]:
        """All declarations of a package name, in section order."""
        return [dep for dep in self.iter_dependencies() if dep.name == name]

    @classmethod
    def from_dict(cls, path: str, data: Optional[Dict[str, Any]]) -> 'Importer':
        importer = cls(path=path)
        if not data:
            return importer

        # v5 lockfiles keep specifiers in a separate map next to bare version strings
        legacy_specifiers = data.get('specifiers') or {}

        for section_name in DEPENDENCY_SECTIONS:
            entries = data.get(section_name) or {}
            target = importer.section(section_name)
            for name, entry in entries.items():
                if isinstance(entry, dict):
                    version = str(entry.get('version', ''))
                    specifier = str(entry.get('specifier', version))
                else:
                    version = str(entry)
                    specifier = str(legacy_specifiers.get(name, version))
                target[name] = ImporterDependency(
                    name=name,
                    specifier=specifier,
                    version=version,
                    dependency_type=section_name,
                )
        return importer


@dataclass
class Snapshot:
    """Resolved dependency edges of one exact package instance."""

    dependencies: Dict[str, str] = field(default_factory=dict)
    optional_dependencies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Snapshot':
        data = data or {}
        return cls(
            dependencies={k: str(v) for k, v in (data.get('dependencies') or {}).items()},
            optional_dependencies={k: str(v) for k, v in (data.get('optionalDependencies') or {}).items()},
        )


@dataclass
class Lockfile:
    """A decoded pnpm-lock.yaml document."""

    lockfile_version: str
    importers: Dict[str, Importer] = field(default_factory=dict)
    packages: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    snapshots: Dict[str, Snapshot] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)
    path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any, path: Optional[str] = None) -> 'Lockfile':
        """
        Build a Lockfile from the decoded YAML mapping.

        Lockfiles without a snapshots section (v5/v6) have their edges taken
        from the packages section, and the leading '/' of legacy package keys
        is dropped so every key has the name@version form.

        Raises:
            MalformedLockfileError: if the document is not a mapping or has no lockfileVersion
        """
        if not isinstance(data, dict):
            raise MalformedLockfileError("Lockfile is not a YAML mapping")
        if 'lockfileVersion' not in data:
            raise MalformedLockfileError("Missing lockfileVersion")

        raw_importers = data.get('importers')
        if not raw_importers:
            # Single-project lockfiles keep their declarations at the top level
            if any(section in data for section in DEPENDENCY_SECTIONS):
                raw_importers = {'.': data}
            else:
                raw_importers = {}

        importers = {
            str(importer_path): Importer.from_dict(str(importer_path), importer_data)
            for importer_path, importer_data in raw_importers.items()
        }

        packages = {
            _strip_legacy_slash(key): value or {}
            for key, value in (data.get('packages') or {}).items()
        }

        if 'snapshots' in data:
            snapshots = {
                str(key): Snapshot.from_dict(value)
                for key, value in (data.get('snapshots') or {}).items()
            }
        else:
            logger.debug("No snapshots section; deriving edges from packages")
            snapshots = {key: Snapshot.from_dict(value) for key, value in packages.items()}

        return cls(
            lockfile_version=str(data['lockfileVersion']),
            importers=importers,
            packages=packages,
            snapshots=snapshots,
            raw=data,
            path=path,
        )


def _strip_legacy_slash(key: Any) -> str:
    key = str(key)
    return key[1:] if key.startswith('/') else key


@dataclass
class DependencyTreeNode:
    """One package instance as it appears in one project's tree."""

    name: str
    version: str
    dependency_type: str = 'dependencies'
    specifier: Optional[str] = None
    is_missing: bool = False
    alias: Optional[str] = None  # declared name when the edge is an npm alias
    children: List['DependencyTreeNode'] = field(default_factory=list)

    @property
    def is_link(self) -> bool:
        return self.version.startswith('link:')

    @property
    def is_peer(self) -> bool:
        return self.dependency_type == 'peerDependencies'

    @property
    def is_optional(self) -> bool:
        return self.dependency_type == 'optionalDependencies'

    @property
    def is_dev(self) -> bool:
        return self.dependency_type == 'devDependencies'

    @property
    def package_id(self) -> str:
        """Instance id; link nodes are identified by their bare name."""
        if self.is_link:
            return self.name
        return f"{self.name}@{self.version}"

    def __str__(self) -> str:
        return self.package_id


@dataclass
class DependencyPathStep:
    """One edge on a path from a project root to a target instance."""

    package: str
    type: str
    specifier: str

    def to_dict(self) -> Dict[str, str]:
        return {'package': self.package, 'type': self.type, 'specifier': self.specifier}


@dataclass
class DependencyInfo:
    """Explains how a project reaches an instance."""

    type_summary: str
    path: List[DependencyPathStep]
    all_paths: Optional[List[List[DependencyPathStep]]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'typeSummary': self.type_summary,
            'path': [step.to_dict() for step in self.path],
        }
        if self.all_paths:
            result['allPaths'] = [[step.to_dict() for step in p] for p in self.all_paths]
        return result


@dataclass
class LinkedDependencyInfo:
    """A workspace link from one project to another."""

    source_importer: str
    link_name: str
    resolved_importer: str


@dataclass
class PackageDependencyInfo:
    """Index record of one instance."""

    importers: Set[str] = field(default_factory=set)
    direct_dependents: Set[str] = field(default_factory=set)


@dataclass
class BuildWarning:
    """A non-fatal problem found while building dependency trees."""

    kind: str  # unresolvable-link, missing-snapshot, missing-importer
    message: str
    importer: Optional[str] = None


@dataclass
class HoistedVersionInfo:
    """One entry of hoistedDependencies in node_modules/.modules.yaml."""

    package_name: str
    version: str
    hoisted_as: str
    visibility: str  # public or private


@dataclass
class HoistConflict:
    """Several versions hoisted into the same node_modules slot."""

    package_name: str
    hoisted_as: str
    versions: List[str]


@dataclass
class DuplicateInstance:
    """One resolved instance of a duplicated package."""

    id: str
    version: str
    projects: List[str]
    dependency_type: str
    dependency_info: Optional[Dict[str, DependencyInfo]] = None  # per project
    hoisted: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'version': self.version,
            'projects': list(self.projects),
            'dependencyType': self.dependency_type,
        }
        if self.hoisted is not None:
            result['hoisted'] = self.hoisted
        if self.dependency_info:
            result['dependencyInfo'] = {
                project: info.to_dict() for project, info in self.dependency_info.items()
            }
        return result


@dataclass
class DuplicateGroup:
    """All instances of one package name."""

    package_name: str
    instances: List[DuplicateInstance]
    hoisted_versions: Optional[List[str]] = None
    hoist_conflict: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'packageName': self.package_name,
            'instances': [instance.to_dict() for instance in self.instances],
        }
        if self.hoisted_versions is not None:
            result['hoistedVersions'] = list(self.hoisted_versions)
            result['hoistConflict'] = self.hoist_conflict
        return result


@dataclass
class ProjectInstance:
    """An instance of a package as seen from one project."""

    id: str
    version: str
    dependency_info: Optional[DependencyInfo] = None
    hoisted: Optional[bool] = None

    @property
    def dependency_type(self) -> str:
        if self.dependency_info is None:
            return 'hoisted'
        return self.dependency_info.type_summary

    def to_dict(self) -> Dict[str, Any]:
        result = {'id': self.id, 'version': self.version}
        if self.dependency_info is not None:
            result['dependencyInfo'] = self.dependency_info.to_dict()
        if self.hoisted is not None:
            result['hoisted'] = self.hoisted
        return result


@dataclass
class ProjectPackageDuplicate:
    """Instances of one package reachable from one project."""

    package_name: str
    instances: List[ProjectInstance]
    hoisted_versions: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'packageName': self.package_name,
            'instances': [instance.to_dict() for instance in self.instances],
        }
        if self.hoisted_versions is not None:
            result['hoistedVersions'] = list(self.hoisted_versions)
        return result


@dataclass
class PerProjectGroup:
    """Duplicates found inside one project."""

    importer_path: str
    duplicate_packages: List[ProjectPackageDuplicate]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'importerPath': self.importer_path,
            'duplicatePackages': [dup.to_dict() for dup in self.duplicate_packages],
        }


@dataclass
class SearchResult:
    """A place in the lockfile where a package appears."""

    package_name: str
    version: str
    path: List[str]
    type: str
    parent: Optional[str] = None
    specifier: Optional[str] = None

    @property
    def package_id(self) -> str:
        return f"{self.package_name}@{self.version}"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'packageName': self.package_name,
            'version': self.version,
            'path': list(self.path),
            'type': self.type,
        }
        if self.parent is not None:
            result['parent'] = self.parent
        if self.specifier is not None:
            result['specifier'] = self.specifier
        return result


@dataclass
class DuplicatesOptions:
    """
    Options for duplicate detection.

    Attributes:
        show_all: Report every package, not only those with several instances
        package_filter: Package names or '*' globs to restrict the report to
        project_filter: Project paths to restrict the report to
        omit_types: Dependency kinds to leave out ('dev', 'optional', 'peer')
        check_hoist: Compare against node_modules/.modules.yaml
        modules_dir: node_modules directory (default: next to the lockfile)
        max_depth: Maximum tree depth when building dependency trees
    """
    show_all: bool = False
    package_filter: Optional[List[str]] = None
    project_filter: Optional[List[str]] = None
    omit_types: Optional[List[str]] = None
    check_hoist: bool = False
    modules_dir: Optional[str] = None
    max_depth: int = 10

    def omitted_sections(self) -> Set[str]:
        return {OMIT_TYPE_SECTIONS.get(t, t) for t in (self.omit_types or [])}


@dataclass
class ListOptions:
    """Options for lockfile search."""

    exact_match: bool = False
    project_filter: Optional[List[str]] = None
