"""Error taxonomy for staging and loading a batch."""

from __future__ import annotations


class BrokerLoadError(Exception):
    """Base class for all loader errors."""


class ConfigurationError(BrokerLoadError, ValueError):
    """A required loader option is missing or has an invalid value."""


class StagingIOError(BrokerLoadError, OSError):
    """Creating, writing, syncing, closing or deleting the staging file failed."""


class LoadTimeout(BrokerLoadError):
    """The load command timed out. Transient; retried by the loader."""


class LoadError(BrokerLoadError):
    """The database rejected the load command. Not retried."""
