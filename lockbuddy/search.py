"""Searching the lockfile for packages."""

import logging
from typing import List, Optional, Set

from .errors import PackageIdParseError
from .formatters import OutputFormatter
from .matcher import matches_version
from .models import ListOptions, Lockfile, SearchResult
from .package_id import PackageIdParser
from .traverser import iter_dependency_edges

logger = logging.getLogger(__name__)

PACKAGE_SECTIONS = ('packages', 'snapshots')


class ListAnalyzer:
    """Finds where packages are declared, resolved and depended upon."""

    def __init__(self, lockfile: Lockfile):
        self.lockfile = lockfile

    def search(self, term: str, options: Optional[ListOptions] = None) -> List[SearchResult]:
        """
        Find every occurrence of a package in the lockfile.

        Args:
            term: Package name, optionally with a version or range ('react@^18')
            options: exact_match compares versions literally; project_filter
                limits the search to the declarations of those projects

        Returns:
            Importer declarations, package/snapshot entries and dependency edges

        Raises:
            PackageIdParseError: if the term has no package name
        """
        options = options or ListOptions()
        parsed = PackageIdParser.parse(term)
        name, version = parsed.name, parsed.version

        results = self._search_importers(name, version, options)
        if options.project_filter:
            return results

        for section in PACKAGE_SECTIONS:
            for key in self.lockfile.raw.get(section) or {}:
                entry = self._parse_key(str(key))
                if entry is None or entry.name != name:
                    continue
                entry_version = self._entry_version(str(key), entry.name)
                if version and not matches_version(entry_version, version, options.exact_match):
                    continue
                results.append(SearchResult(
                    package_name=name,
                    version=entry_version,
                    path=[section, str(key)],
                    type=section,
                ))

        for section, parent, edge_section, dep_name, dep_version in iter_dependency_edges(self.lockfile.raw):
            if dep_name != name:
                continue
            if version and not matches_version(dep_version, version, options.exact_match):
                continue
            results.append(SearchResult(
                package_name=name,
                version=dep_version,
                path=[section, parent, edge_section, dep_name],
                type=edge_section,
                parent=parent.lstrip('/'),
            ))

        logger.info(f"Found {len(results)} occurrences of {term}")
        return results

    def list_all(self, options: Optional[ListOptions] = None) -> List[SearchResult]:
        """List every importer declaration and every package/snapshot entry."""
        options = options or ListOptions()
        results = self._search_importers(None, None, options)
        if options.project_filter:
            return results

        for section in PACKAGE_SECTIONS:
            for key in self.lockfile.raw.get(section) or {}:
                entry = self._parse_key(str(key))
                if entry is None:
                    continue
                results.append(SearchResult(
                    package_name=entry.name,
                    version=self._entry_version(str(key), entry.name),
                    path=[section, str(key)],
                    type=section,
                ))
        return results

    def package_exists(self, name: str) -> bool:
        for importer in self.lockfile.importers.values():
            if importer.find(name):
                return True
        return name in self._package_names()

    def format_results(self, results: List[SearchResult], output_format: str = 'tree') -> str:
        if output_format == 'json':
            return OutputFormatter.format_as_json(results)
        if output_format == 'list':
            return OutputFormatter.format_as_list(results)
        if output_format == 'sbom':
            return OutputFormatter.format_as_sbom(results)
        return OutputFormatter.format_as_tree(results)

    def _search_importers(self, name: Optional[str], version: Optional[str], options: ListOptions) -> List[SearchResult]:
        results: List[SearchResult] = []
        for importer_path, importer in self.lockfile.importers.items():
            if options.project_filter and importer_path not in options.project_filter:
                continue
            for dep in importer.iter_dependencies():
                if name is not None and dep.name != name:
                    continue
                if version and not matches_version(dep.version, version, options.exact_match):
                    continue
                results.append(SearchResult(
                    package_name=dep.name,
                    version=dep.version,
                    path=['importers', importer_path, dep.dependency_type, dep.name],
                    type=dep.dependency_type,
                    parent=importer_path,
                    specifier=dep.specifier,
                ))
        return results

    def _package_names(self) -> Set[str]:
        names = set()
        for section in PACKAGE_SECTIONS:
            for key in self.lockfile.raw.get(section) or {}:
                entry = self._parse_key(str(key))
                if entry is not None:
                    names.add(entry.name)
        return names

    @staticmethod
    def _parse_key(key: str):
        try:
            return PackageIdParser.parse(key.lstrip('/'))
        except PackageIdParseError as e:
            logger.debug(f"Skipping lockfile key: {e}")
            return None

    @staticmethod
    def _entry_version(key: str, name: str) -> str:
        """Version token of a packages/snapshots key, peer suffix included."""
        return key.lstrip('/')[len(name) + 1:]
