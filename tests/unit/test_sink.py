"""Streaming sink: partition loading and foreachBatch wiring."""

from __future__ import annotations

from pathlib import Path

import pytest
from pyspark.sql import Row

from brokerload.doris_client import ExecuteResult
from brokerload.errors import ConfigurationError, LoadError
from brokerload.loader import LoaderState
from brokerload.options import LoaderOptions
from brokerload.settings import SinkConfig
from brokerload.sink import BrokerLoadSink, load_partition, make_label
from brokerload.storage import LocalFileSystem
from tests.fakes import FakeClient


class FakeDataFrame:
    def __init__(self, partitions: list[list[Row]]) -> None:
        self.partitions = partitions

    def foreachPartition(self, f) -> None:
        for rows in self.partitions:
            f(iter(rows))


@pytest.fixture
def config() -> SinkConfig:
    return SinkConfig(staging_fs="local", label_prefix="test")


def test_make_label() -> None:
    assert make_label("brokerload", "orders", 7, 3) == "brokerload_orders_7_3"


class TestLoadPartition:
    def test_rows_are_staged_and_loaded(self, options, sleep, config, staging_dir: Path) -> None:
        client = FakeClient()
        rows = [Row(id=1, name="a"), Row(id=2, name=None)]
        state = load_partition(
            rows, "test_orders_1_0", "orders", LoaderOptions.from_mapping(options), config,
            filesystem_factory=lambda cfg: LocalFileSystem(),
            client_factory=lambda cfg: client,
            sleep=sleep,
        )
        assert state is LoaderState.LOADED
        assert client.closed
        assert f"LOAD LABEL {config.doris.database}.test_orders_1_0 " in client.commands[0]
        assert not (staging_dir / "test_orders_1_0").exists()

    def test_empty_partition_is_skipped(self, options, config) -> None:
        def client_factory(cfg):
            raise AssertionError("no client needed for an empty partition")

        state = load_partition(
            iter([]), "test_orders_1_0", "orders", LoaderOptions.from_mapping(options), config,
            filesystem_factory=lambda cfg: LocalFileSystem(),
            client_factory=client_factory,
        )
        assert state is None

    def test_staged_content_is_encoded(self, options, sleep, config, staging_dir: Path) -> None:
        rows = [Row(id=1, name="a\tb"), Row(id=2, name=None)]
        load_partition(
            rows, "test_orders_2_0", "orders", LoaderOptions.from_mapping(options), config,
            filesystem_factory=lambda cfg: LocalFileSystem(),
            client_factory=lambda cfg: FakeClient(*[ExecuteResult.timeout(TimeoutError("timed out"))] * 10),
            sleep=sleep,
        )
        assert (staging_dir / "test_orders_2_0").read_text(encoding="utf-8") == "1\ta\\tb\n2\t\\N\n"

    def test_load_error_propagates_and_client_is_closed(self, options, sleep, config) -> None:
        client = FakeClient(ExecuteResult.fatal(RuntimeError("Access denied")))
        with pytest.raises(LoadError):
            load_partition(
                [Row(id=1)], "test_orders_3_0", "orders", LoaderOptions.from_mapping(options), config,
                filesystem_factory=lambda cfg: LocalFileSystem(),
                client_factory=lambda cfg: client,
                sleep=sleep,
            )
        assert client.closed


class TestBrokerLoadSink:
    def test_invalid_options_fail_on_driver(self, config) -> None:
        with pytest.raises(ConfigurationError):
            BrokerLoadSink(config, "orders", {"palo.data.dir": "/tmp/staging"})

    def test_non_empty_partitions_are_loaded(self, options, config) -> None:
        clients: list[FakeClient] = []

        def client_factory(cfg):
            clients.append(FakeClient())
            return clients[-1]

        sink = BrokerLoadSink(
            config, "orders", options,
            filesystem_factory=lambda cfg: LocalFileSystem(),
            client_factory=client_factory,
        )
        sink(FakeDataFrame([[Row(id=1)], [], [Row(id=2), Row(id=3)]]), 7)

        assert len(clients) == 2
        assert all(c.closed for c in clients)
        # outside a Spark task there is no TaskContext, so the partition id falls back to 0
        assert all("test_orders_7_0 " in c.commands[0] for c in clients)
