"""Resolution of workspace link: and file: version tokens to project paths."""

import logging
import posixpath
import re
from typing import Dict, List, Mapping, Optional

from .models import Importer, LinkedDependencyInfo

logger = logging.getLogger(__name__)

ROOT_PROJECT = '.'

FILE_VERSION_PATTERN = re.compile(r'^file:([^(]+)')


def resolve_link_path(source_importer: str, specifier: str) -> Optional[str]:
    """
    Resolve a link: specifier to the project path it points at.

    Links declared by the root project are root-relative: a leading './' or
    '../' is dropped and a bare path is taken as-is. Links declared by any
    other project are resolved segment by segment against that project's path.
    No filesystem access takes place.

    Args:
        source_importer: Project path that declares the link ('.' for the root)
        specifier: Resolved version token such as 'link:../../packages/logger'

    Returns:
        Target project path, or None if the specifier is empty
    """
    relative = specifier[len('link:'):] if specifier.startswith('link:') else specifier
    relative = relative.strip()
    if not relative:
        return None

    if source_importer in (ROOT_PROJECT, ''):
        if relative.startswith('./'):
            relative = relative[2:]
        elif relative.startswith('../'):
            relative = relative[3:]
        relative = relative.rstrip('/')
        return relative or ROOT_PROJECT

    segments = [s for s in source_importer.split('/') if s and s != '.']
    for part in relative.split('/'):
        if part in ('', '.'):
            continue
        if part == '..':
            # Ascending past the workspace root stays at the root
            if segments:
                segments.pop()
            continue
        segments.append(part)

    return '/'.join(segments) if segments else ROOT_PROJECT


def extract_importer_path_from_file_version(version: str) -> Optional[str]:
    """Return the path of an injected file: version, without its peer suffix."""
    match = FILE_VERSION_PATTERN.match(version)
    if not match:
        return None
    return match.group(1)


def find_importer_by_file_path(file_path: str, importers: Mapping[str, Importer]) -> Optional[str]:
    """Find the project an injected file: path originates from."""
    normalized = posixpath.normpath(file_path.replace('\\', '/'))
    while normalized.startswith('../'):
        normalized = normalized[3:]
    if normalized.startswith('./'):
        normalized = normalized[2:]

    if normalized in importers:
        return normalized

    logger.debug(f"No importer matches injected path {file_path}")
    return None


def collect_linked_dependencies(importers: Mapping[str, Importer]) -> Dict[str, List[LinkedDependencyInfo]]:
    """List every resolvable workspace link, keyed by the declaring project."""
    linked: Dict[str, List[LinkedDependencyInfo]] = {}
    for importer_path, importer in importers.items():
        for dep in importer.iter_dependencies():
            if not dep.is_link:
                continue
            target = resolve_link_path(importer_path, dep.version)
            if target is None or target not in importers:
                continue
            linked.setdefault(importer_path, []).append(
                LinkedDependencyInfo(
                    source_importer=importer_path,
                    link_name=dep.name,
                    resolved_importer=target,
                )
            )
    return linked
