"""Reading the installed-state manifest node_modules/.modules.yaml."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import yaml

from .errors import ModulesManifestError, PackageIdParseError
from .matcher import matches_any_wildcard
from .models import HoistConflict, HoistedVersionInfo
from .package_id import PackageIdParser

logger = logging.getLogger(__name__)

MODULES_MANIFEST_NAME = '.modules.yaml'


def load_modules_yaml(modules_dir: str) -> Dict[str, Any]:
    """
    Load <modules_dir>/.modules.yaml.

    Args:
        modules_dir: node_modules directory, or the manifest file itself

    Raises:
        ModulesManifestError: if the manifest is missing or not valid YAML
    """
    path = Path(modules_dir)
    if path.is_dir():
        path = path / MODULES_MANIFEST_NAME

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ModulesManifestError(f"Failed to load {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ModulesManifestError(f"Failed to parse {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ModulesManifestError(f"Unexpected content in {path}")
    return data


def get_hoisted_entries(manifest: Dict[str, Any]) -> List[HoistedVersionInfo]:
    """Decode hoistedDependencies keys; unparsable keys are skipped."""
    entries: List[HoistedVersionInfo] = []
    for package_spec, hoist_info in (manifest.get('hoistedDependencies') or {}).items():
        spec = str(package_spec)
        if spec.startswith('/'):
            spec = spec[1:]
        try:
            parsed = PackageIdParser.parse(spec)
        except PackageIdParseError as e:
            logger.debug(f"Skipping hoisted entry: {e}")
            continue

        hoisted_as = parsed.name
        visibility = 'private'
        if isinstance(hoist_info, dict) and hoist_info:
            hoisted_as, visibility = next(iter(hoist_info.items()))

        entries.append(HoistedVersionInfo(
            package_name=parsed.name,
            version=parsed.version or 'unknown',
            hoisted_as=str(hoisted_as),
            visibility=str(visibility),
        ))
    return entries


def get_hoisted_versions(manifest: Dict[str, Any]) -> Dict[str, Set[str]]:
    """Map each package name to the versions hoisted for it."""
    versions: Dict[str, Set[str]] = {}
    for entry in get_hoisted_entries(manifest):
        versions.setdefault(entry.package_name, set()).add(entry.version)
    return versions


def detect_hoist_conflicts(manifest: Dict[str, Any], package_filter: Optional[List[str]] = None) -> List[HoistConflict]:
    """Find packages with more than one version hoisted under the same name."""
    slots: Dict[tuple, Set[str]] = {}
    for entry in get_hoisted_entries(manifest):
        if package_filter and not matches_any_wildcard(entry.package_name, package_filter):
            continue
        slots.setdefault((entry.package_name, entry.hoisted_as), set()).add(entry.version)

    conflicts = [
        HoistConflict(package_name=name, hoisted_as=hoisted_as, versions=sorted(versions))
        for (name, hoisted_as), versions in slots.items()
        if len(versions) > 1
    ]
    conflicts.sort(key=lambda c: (c.package_name, c.hoisted_as))
    return conflicts
