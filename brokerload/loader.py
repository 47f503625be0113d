"""Stage one batch as a file and bulk-load it with a broker load statement.

A :class:`BatchFileLoader` owns exactly one staging file for one batch:

    INITIALIZED -> WRITING -> FLUSHED -> LOADING -> LOADED | RETAINED

Any fatal error moves it to FAILED. A batch whose load keeps timing out ends
in RETAINED: the staging file is kept for manual recovery and no exception is
raised, so operators must watch the warning log and the staging directory.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Protocol, Union

from brokerload.command import LoadCommandParams, build_load_command, mask_password
from brokerload.doris_client import ExecuteResult, ExecuteStatus
from brokerload.errors import LoadError, LoadTimeout, StagingIOError
from brokerload.options import LoaderOptions, validate_label
from brokerload.storage import StagingFileSystem, StagingHandle, staging_path

logger = logging.getLogger(__name__)


class LoaderState(enum.Enum):
    INITIALIZED = "initialized"
    WRITING = "writing"
    FLUSHED = "flushed"
    LOADING = "loading"
    LOADED = "loaded"
    RETAINED = "retained"
    FAILED = "failed"


class LoadClient(Protocol):
    def execute(self, command: str) -> ExecuteResult: ...

    def close(self) -> None: ...


@dataclass
class _StagingResources:
    """Everything one batch holds open on the staging filesystem."""

    filesystem: StagingFileSystem
    path: str
    handle: Optional[StagingHandle] = None
    filesystem_released: bool = False

    def close_handle(self) -> None:
        handle, self.handle = self.handle, None
        if handle is not None:
            handle.close()

    def close_handle_quietly(self) -> None:
        try:
            self.close_handle()
        except StagingIOError as e:
            logger.error("Closing staging handle %s after a failure also failed: %s", self.path, e)

    def release_filesystem(self) -> None:
        if self.filesystem_released:
            return
        self.filesystem_released = True
        self.filesystem.close()


class BatchFileLoader:
    """Stage, load and clean up one batch.

    The loader takes ownership of ``filesystem`` once constructed and releases
    it in :meth:`close`. ``client`` stays owned by the caller.

    Args:
        label: Unique load label; also the staging file name.
        database: Target database.
        table: Target table.
        options: Raw option mapping or already parsed :class:`LoaderOptions`.
        filesystem: Staging filesystem client.
        client: Executes the load statement and reports an :class:`ExecuteResult`.
        max_retries: Timeouts tolerated before the file is retained.
        retry_wait_seconds: Pause between timed-out attempts.
        sleep: Blocking wait used between attempts.
        resume: Attach to a staging file retained by an earlier run instead
            of creating a fresh one.

    Raises:
        ConfigurationError: options or label are invalid. Raised before any
            filesystem access.
        StagingIOError: the staging file could not be prepared.
    """

    def __init__(
        self,
        label: str,
        database: str,
        table: str,
        options: Union[LoaderOptions, Mapping[str, str]],
        filesystem: StagingFileSystem,
        client: LoadClient,
        max_retries: int = 3,
        retry_wait_seconds: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
        resume: bool = False,
    ) -> None:
        self.options = options if isinstance(options, LoaderOptions) else LoaderOptions.from_mapping(options)
        self.label = validate_label(label)
        self.database = database
        self.table = table
        self.max_retries = max_retries
        self.retry_wait_seconds = retry_wait_seconds
        self._client = client
        self._sleep = sleep
        self._resources = _StagingResources(filesystem, staging_path(self.options.data_dir, label))
        self._closed = False

        self.state = LoaderState.INITIALIZED
        self.retries = 0
        self.records_written = 0
        self.bytes_written = 0
        self.command: Optional[str] = None
        self.last_error: Optional[Exception] = None

        if resume:
            self._attach()
        else:
            self._open()

    @property
    def staging_path(self) -> str:
        return self._resources.path

    @property
    def staging_uri(self) -> str:
        return self._resources.filesystem.uri(self._resources.path)

    def _open(self) -> None:
        fs, path = self._resources.filesystem, self._resources.path
        logger.info("dataDir: %s, label: %s, staging path: %s", self.options.data_dir, self.label, path)
        try:
            # a file left behind by a crashed attempt must not leak into this batch
            if fs.exists(path):
                fs.delete(path)
                logger.info("Staging path %s existed, deleted it", path)
            self._resources.handle = fs.create(path)
        except StagingIOError as e:
            logger.error("Loader init failed for label %s: %s", self.label, e)
            self._resources.close_handle_quietly()
            raise
        logger.info("Created staging file %s", path)

    def _attach(self) -> None:
        path = self._resources.path
        if not self._resources.filesystem.exists(path):
            raise StagingIOError(f"No retained staging file at {path}")
        self.state = LoaderState.FLUSHED
        logger.info("Attached to retained staging file %s", path)

    def write_record(self, content: str) -> int:
        """Append ``content`` to the staging file.

        No delimiter is added. Returns the number of UTF-8 bytes written.
        """
        if self.state not in (LoaderState.INITIALIZED, LoaderState.WRITING):
            raise RuntimeError(f"Cannot write to label {self.label} in state {self.state.name}")
        data = content.encode("utf-8")
        self._resources.handle.write(data)
        self.state = LoaderState.WRITING
        self.records_written += 1
        self.bytes_written += len(data)
        return len(data)

    def _flush(self) -> None:
        handle = self._resources.handle
        try:
            handle.flush()
            handle.sync()
            self._resources.close_handle()
        except StagingIOError as e:
            self.state = LoaderState.FAILED
            logger.error("Flushing staging file %s failed: %s", self._resources.path, e)
            self._resources.close_handle_quietly()
            raise
        self.state = LoaderState.FLUSHED
        logger.info(
            "Flushed %d records (%d bytes) to %s", self.records_written, self.bytes_written, self._resources.path
        )

    def _build_command(self) -> str:
        params = LoadCommandParams.from_options(
            self.options,
            database=self.database,
            label=self.label,
            table=self.table,
            file_uri=self.staging_uri,
        )
        command = build_load_command(params)
        logger.debug("Load statement: %s", mask_password(command, self.options.password))
        return command

    def load(self) -> LoaderState:
        """Flush the staging file and load it into the target table.

        Returns:
            LOADED, or RETAINED when every attempt timed out.

        Raises:
            StagingIOError: the staging file could not be flushed or closed.
            LoadError: the database rejected the statement.
        """
        if self.state not in (LoaderState.INITIALIZED, LoaderState.WRITING):
            raise RuntimeError(f"Cannot load label {self.label} in state {self.state.name}")
        self._flush()
        return self._execute(self._build_command())

    def recover(self) -> LoaderState:
        """Load a staging file retained by an earlier run, as is."""
        if self.state is not LoaderState.FLUSHED:
            raise RuntimeError(f"Cannot recover label {self.label} in state {self.state.name}")
        return self._execute(self._build_command())

    def _describe(self, error: Optional[Exception]) -> str:
        # driver errors echo the failed statement, credentials included
        return mask_password(str(error), self.options.password)

    def _execute(self, command: str) -> LoaderState:
        self.command = command
        self.state = LoaderState.LOADING
        logger.info("Start loading %s into %s.%s", self._resources.path, self.database, self.table)

        while True:
            result = self._client.execute(command)

            if result.status is ExecuteStatus.SUCCESS:
                self.state = LoaderState.LOADED
                logger.info("Loaded label %s after %d retries", self.label, self.retries)
                return self.state

            if result.status is ExecuteStatus.FATAL:
                self.state = LoaderState.FAILED
                self.last_error = result.error
                reason = self._describe(result.error)
                logger.error("Load of label %s into %s.%s failed: %s", self.label, self.database, self.table, reason)
                raise LoadError(f"Load of label {self.label} failed: {reason}") from result.error

            self.retries += 1
            if self.retries >= self.max_retries:
                self.state = LoaderState.RETAINED
                self.last_error = LoadTimeout(f"Load of label {self.label} timed out {self.retries} times")
                self.last_error.__cause__ = result.error
                logger.warning(
                    "After %d retries load of label %s still times out (%s), retain file for restore, path: %s",
                    self.retries, self.label, self._describe(result.error), self._resources.path,
                )
                return self.state

            logger.warning(
                "Load of label %s timed out, retry %d/%d in %.1fs",
                self.label, self.retries, self.max_retries, self.retry_wait_seconds,
            )
            self._sleep(self.retry_wait_seconds)

    def delete_staging_file(self) -> bool:
        """Delete the staging file of a loaded batch.

        Skipped unless the batch is LOADED. Safe to call repeatedly.
        """
        path = self._resources.path
        if self.state is not LoaderState.LOADED:
            logger.info("Keeping staging file %s (state %s)", path, self.state.name)
            return False
        fs = self._resources.filesystem
        try:
            if not fs.exists(path):
                logger.debug("Staging file %s already gone", path)
                return False
            deleted = fs.delete(path)
        except StagingIOError as e:
            logger.error("Delete staging file %s failed: %s", path, e)
            raise
        if deleted:
            logger.info("Deleted %s", path)
        else:
            logger.warning("Delete %s failed", path)
        return deleted

    def close(self) -> None:
        """Release the write handle (if still open) and the filesystem client."""
        if self._closed:
            return
        self._closed = True
        self._resources.close_handle_quietly()
        try:
            self._resources.release_filesystem()
        except StagingIOError as e:
            logger.error("Releasing staging filesystem failed: %s", e)
            raise

    def __enter__(self) -> BatchFileLoader:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def recover_staged_file(
    label: str,
    database: str,
    table: str,
    options: Union[LoaderOptions, Mapping[str, str]],
    filesystem: StagingFileSystem,
    client: LoadClient,
    max_retries: int = 3,
    retry_wait_seconds: float = 10.0,
    sleep: Callable[[float], None] = time.sleep,
) -> LoaderState:
    """Re-issue the load of a staging file retained after exhausted retries."""
    with BatchFileLoader(
        label, database, table, options, filesystem, client,
        max_retries=max_retries, retry_wait_seconds=retry_wait_seconds, sleep=sleep, resume=True,
    ) as loader:
        state = loader.recover()
        loader.delete_staging_file()
    return state
