"""pnpm lockfile duplicate and hoisting analyzer."""

__version__ = "0.4.0"
