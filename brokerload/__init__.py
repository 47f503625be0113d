"""Broker load sink: stage streaming batches as files and bulk-load them into Doris."""

from brokerload.command import LoadCommandParams, build_load_command
from brokerload.errors import BrokerLoadError, ConfigurationError, LoadError, LoadTimeout, StagingIOError
from brokerload.loader import BatchFileLoader, LoaderState, recover_staged_file
from brokerload.options import LoaderOptions

__all__ = [
    "BatchFileLoader",
    "LoaderState",
    "recover_staged_file",
    "LoaderOptions",
    "LoadCommandParams",
    "build_load_command",
    "BrokerLoadError",
    "ConfigurationError",
    "StagingIOError",
    "LoadTimeout",
    "LoadError",
]
