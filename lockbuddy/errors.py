"""Exception types raised by lockbuddy."""


class LockBuddyError(Exception):
    """Base class for all lockbuddy errors."""


class LockfileNotFoundError(LockBuddyError):
    """The lockfile does not exist at the resolved path."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Lockfile not found at {path}")


class MalformedLockfileError(LockBuddyError):
    """The lockfile is missing its required top-level shape."""


class PackageIdParseError(LockBuddyError, ValueError):
    """A package id string cannot be decomposed into name and version."""

    def __init__(self, package_id: str, reason: str):
        self.package_id = package_id
        self.reason = reason
        super().__init__(f"Cannot parse package id '{package_id}': {reason}")


class ProjectNotFoundError(LockBuddyError, LookupError):
    """No dependency tree was built for the requested project path."""

    def __init__(self, project: str):
        self.project = project
        super().__init__(f"Project not found in lockfile: {project}")


class DependencyPathNotFoundError(LockBuddyError, LookupError):
    """A project has a tree, but no path leads to the requested instance."""

    def __init__(self, project: str, package_id: str):
        self.project = project
        self.package_id = package_id
        super().__init__(f"No dependency path from {project} to {package_id}")


class HierarchyUnavailableError(LockBuddyError):
    """The installed-tree hierarchy could not be computed."""


class ModulesManifestError(LockBuddyError):
    """The node_modules/.modules.yaml manifest could not be read."""
