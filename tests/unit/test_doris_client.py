"""Database error classification and the execute-result contract."""

from __future__ import annotations

import contextlib

import pytest
from sqlalchemy import exc as sa_exc

from brokerload.doris_client import DorisClient, ExecuteStatus, classify_error, is_timeout
from brokerload.errors import LoadError
from brokerload.loader import BatchFileLoader, LoaderState
from brokerload.settings import DorisConfig
from brokerload.storage import LocalFileSystem

SYNTAX_ERROR_QUOTING_PROPERTIES = (
    "errCode = 2, detailMessage = Syntax error in line 1:\n"
    '...WITH BROKER hdfs_broker ("username"="loader","password"="******") '
    'PROPERTIES("timeout"="3600","max_filter_ratio"="0.1",...\n'
    "                                                    ^\n"
    "Encountered: IDENTIFIER"
)


def _operational(code: int, message: str) -> sa_exc.OperationalError:
    return sa_exc.OperationalError("LOAD LABEL sales.batch42", {}, Exception(code, message))


class FakeConnection:
    def __init__(self, error: Exception | None) -> None:
        self.error = error
        self.statements: list[str] = []

    def exec_driver_sql(self, statement: str) -> None:
        self.statements.append(statement)
        if self.error is not None:
            raise self.error


class FakeEngine:
    def __init__(self, error: Exception | None = None) -> None:
        self.connection = FakeConnection(error)
        self.disposed = False

    @contextlib.contextmanager
    def begin(self):
        yield self.connection

    def dispose(self) -> None:
        self.disposed = True


class TestIsTimeout:
    @pytest.mark.parametrize(
        "error",
        [
            _operational(2013, "Lost connection to MySQL server during query"),
            _operational(3024, "Query execution was interrupted, maximum statement execution time exceeded"),
            _operational(1205, "Lock wait timeout exceeded"),
            sa_exc.OperationalError("LOAD", {}, Exception("Read timed out while waiting for the load job")),
            sa_exc.TimeoutError("QueuePool limit of size 5 overflow 10 reached, connection timed out"),
        ],
    )
    def test_timeouts(self, error: Exception) -> None:
        assert is_timeout(error)

    @pytest.mark.parametrize(
        "error",
        [
            _operational(1064, "You have an error in your SQL syntax"),
            _operational(1045, "Access denied for user 'loader'"),
            sa_exc.ProgrammingError("LOAD", {}, Exception(1146, "Table 'sales.orders' doesn't exist")),
            sa_exc.ProgrammingError("LOAD", {}, Exception(1064, SYNTAX_ERROR_QUOTING_PROPERTIES)),
            _operational(1105, SYNTAX_ERROR_QUOTING_PROPERTIES),
            sa_exc.OperationalError("LOAD", {}, Exception(SYNTAX_ERROR_QUOTING_PROPERTIES)),
        ],
    )
    def test_non_timeouts(self, error: Exception) -> None:
        assert not is_timeout(error)

    def test_classify_keeps_original_error(self) -> None:
        error = _operational(1064, "You have an error in your SQL syntax")
        result = classify_error(error)
        assert result.status is ExecuteStatus.FATAL
        assert result.error is error


class TestDorisClient:
    @pytest.fixture
    def client(self) -> DorisClient:
        return DorisClient(DorisConfig(host="doris-fe", port=9030, database="sales", user="root", password=""))

    def test_success(self, client: DorisClient) -> None:
        engine = FakeEngine()
        client._engine = engine
        result = client.execute("LOAD LABEL sales.batch42 (...)")
        assert result.status is ExecuteStatus.SUCCESS
        assert engine.connection.statements == ["LOAD LABEL sales.batch42 (...)"]

    def test_timeout_is_returned_not_raised(self, client: DorisClient) -> None:
        client._engine = FakeEngine(_operational(2013, "Lost connection to MySQL server during query"))
        assert client.execute("LOAD LABEL sales.batch42 (...)").status is ExecuteStatus.TIMEOUT

    def test_fatal_is_returned_not_raised(self, client: DorisClient) -> None:
        client._engine = FakeEngine(_operational(1064, "You have an error in your SQL syntax"))
        assert client.execute("LOAD LABEL sales.batch42 (...)").status is ExecuteStatus.FATAL

    def test_close_disposes_engine(self, client: DorisClient) -> None:
        engine = FakeEngine()
        client._engine = engine
        client.close()
        assert engine.disposed


class TestLoaderWithDorisClient:
    def test_syntax_error_quoting_timeout_property_is_not_retried(self, options, sleep, staging_dir) -> None:
        client = DorisClient(DorisConfig(host="doris-fe", database="sales"))
        client._engine = FakeEngine(
            sa_exc.ProgrammingError("LOAD LABEL sales.batch42", {}, Exception(1064, SYNTAX_ERROR_QUOTING_PROPERTIES))
        )
        with BatchFileLoader(
            "batch42", "sales", "orders", options, LocalFileSystem(), client, retry_wait_seconds=5.0, sleep=sleep
        ) as loader:
            loader.write_record("1\trow\n")
            with pytest.raises(LoadError):
                loader.load()

        assert loader.state is LoaderState.FAILED
        assert loader.retries == 0
        assert sleep.waits == []
        assert len(client._engine.connection.statements) == 1
        assert (staging_dir / "batch42").exists()
