"""Loading pnpm-lock.yaml files from disk."""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

import yaml

from .errors import LockfileNotFoundError, MalformedLockfileError
from .models import Lockfile

logger = logging.getLogger(__name__)

LOCKFILE_NAME = 'pnpm-lock.yaml'
LOCKFILE_PATH_ENV = 'PNPM_LOCK_PATH'


def resolve_lockfile_path(path: Optional[str] = None) -> str:
    """Explicit path, else $PNPM_LOCK_PATH, else ./pnpm-lock.yaml."""
    if path:
        return str(Path(path).resolve())
    env_path = os.environ.get(LOCKFILE_PATH_ENV)
    if env_path:
        return str(Path(env_path).resolve())
    return str(Path.cwd() / LOCKFILE_NAME)


class LockfileLoader:
    """Read-through cache of parsed lockfiles keyed by resolved path."""

    def __init__(self):
        self._cache: Dict[str, Lockfile] = {}

    def get_or_load(self, path: Optional[str] = None) -> Lockfile:
        """
        Return the parsed lockfile at path, loading it on first use.

        Raises:
            LockfileNotFoundError: if the file does not exist
            MalformedLockfileError: if the YAML is invalid or lacks lockfileVersion
        """
        resolved = resolve_lockfile_path(path)
        cached = self._cache.get(resolved)
        if cached is not None:
            logger.debug(f"Using cached lockfile {resolved}")
            return cached

        lockfile = self._load(resolved)
        self._cache[resolved] = lockfile
        return lockfile

    def clear(self) -> None:
        self._cache.clear()

    def __contains__(self, path: str) -> bool:
        return resolve_lockfile_path(path) in self._cache

    @staticmethod
    def _load(path: str) -> Lockfile:
        if not Path(path).is_file():
            raise LockfileNotFoundError(path)

        logger.info(f"Loading lockfile {path}")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise MalformedLockfileError(f"Invalid YAML in {path}: {e}") from e

        lockfile = Lockfile.from_dict(data, path=path)
        logger.info(
            f"Parsed lockfile v{lockfile.lockfile_version}: {len(lockfile.importers)} importers, "
            f"{len(lockfile.snapshots)} snapshots"
        )
        return lockfile


_default_loader = LockfileLoader()


def load_lockfile(path: Optional[str] = None) -> Lockfile:
    """Load a lockfile through the process-wide loader."""
    return _default_loader.get_or_load(path)


def clear_lockfile_cache() -> None:
    _default_loader.clear()
