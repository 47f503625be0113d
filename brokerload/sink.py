"""Structured Streaming sink: every micro-batch partition becomes one broker load."""

from __future__ import annotations

import itertools
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Optional

from brokerload.doris_client import DorisClient
from brokerload.encoding import encode_row
from brokerload.errors import BrokerLoadError
from brokerload.loader import BatchFileLoader, LoadClient, LoaderState
from brokerload.options import LoaderOptions
from brokerload.settings import DorisConfig, SinkConfig
from brokerload.storage import StagingFileSystem, create_filesystem

if TYPE_CHECKING:
    from pyspark.sql import DataFrame

logger = logging.getLogger(__name__)


def default_filesystem(config: SinkConfig) -> StagingFileSystem:
    return create_filesystem(config.staging_fs, config.minio)


def default_client(config: DorisConfig) -> DorisClient:
    return DorisClient(config)


def make_label(prefix: str, table: str, batch_id: int, partition_id: int) -> str:
    return f"{prefix}_{table}_{batch_id}_{partition_id}"


def load_partition(
    rows: Iterable[Any],
    label: str,
    table: str,
    options: LoaderOptions,
    config: SinkConfig,
    filesystem_factory: Callable[[SinkConfig], StagingFileSystem] = default_filesystem,
    client_factory: Callable[[DorisConfig], LoadClient] = default_client,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[LoaderState]:
    """Stage ``rows`` under ``label`` and load them into ``table``.

    Returns the final loader state, or None for an empty partition.
    """
    rows = iter(rows)
    first = next(rows, None)
    if first is None:
        logger.info("Partition for label %s is empty, nothing to load", label)
        return None

    client = client_factory(config.doris)
    try:
        filesystem = filesystem_factory(config)
        try:
            loader = BatchFileLoader(
                label,
                config.doris.database,
                table,
                options,
                filesystem,
                client,
                max_retries=config.doris.max_retries,
                retry_wait_seconds=config.doris.retry_wait_seconds,
                sleep=sleep,
            )
        except BrokerLoadError:
            filesystem.close()
            raise

        with loader:
            for row in itertools.chain([first], rows):
                loader.write_record(encode_row(row))
            state = loader.load()
            loader.delete_staging_file()
    finally:
        client.close()
    return state


class BrokerLoadSink:
    """``foreachBatch`` callable loading every micro-batch into ``table``.

    Options are validated on the driver so a misconfigured query fails
    before any task is scheduled.
    """

    def __init__(
        self,
        config: SinkConfig,
        table: str,
        options: Mapping[str, str],
        filesystem_factory: Callable[[SinkConfig], StagingFileSystem] = default_filesystem,
        client_factory: Callable[[DorisConfig], LoadClient] = default_client,
    ) -> None:
        self.config = config
        self.table = table
        self.options = LoaderOptions.from_mapping(options)
        self.filesystem_factory = filesystem_factory
        self.client_factory = client_factory

    def partition_writer(self, batch_id: int) -> Callable[[Iterable[Any]], None]:
        config, table, options = self.config, self.table, self.options
        filesystem_factory, client_factory = self.filesystem_factory, self.client_factory

        def write(rows: Iterable[Any]) -> None:
            from pyspark import TaskContext

            context = TaskContext.get()
            partition_id = context.partitionId() if context is not None else 0
            label = make_label(config.label_prefix, table, batch_id, partition_id)
            load_partition(rows, label, table, options, config, filesystem_factory, client_factory)

        return write

    def __call__(self, batch_df: DataFrame, batch_id: int) -> None:
        logger.info("Loading micro-batch %d into %s.%s", batch_id, self.config.doris.database, self.table)
        start = time.time()
        batch_df.foreachPartition(self.partition_writer(batch_id))
        logger.info("Micro-batch %d done in %.1fs", batch_id, time.time() - start)
