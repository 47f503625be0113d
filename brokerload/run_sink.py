"""Sink runner: stream files into a Doris table, or recover a retained batch."""

from __future__ import annotations

import argparse
import logging
import sys
import time

from brokerload.errors import BrokerLoadError
from brokerload.loader import LoaderState, recover_staged_file
from brokerload.settings import SinkConfig, load_config
from brokerload.sink import BrokerLoadSink, default_client, default_filesystem
from brokerload.spark_session import create_spark_session

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("brokerload")


def run_stream(config: SinkConfig, args: argparse.Namespace) -> None:
    sink = BrokerLoadSink(config, args.table, config.loader_options())
    spark = create_spark_session(config, args.source, args.checkpoint)

    try:
        stream_df = (
            spark.readStream
            .format(args.format)
            .schema(args.schema)
            .option("maxFilesPerTrigger", args.max_files_per_trigger)
            .load(args.source)
        )
        writer = (
            stream_df.writeStream
            .foreachBatch(sink)
            .option("checkpointLocation", args.checkpoint)
        )
        writer = writer.trigger(availableNow=True) if args.once else writer.trigger(processingTime=args.interval)

        logger.info("Streaming %s (%s) into %s.%s", args.source, args.format, config.doris.database, args.table)
        start = time.time()
        query = writer.start()
        query.awaitTermination()
        logger.info("Stream finished in %.1fs", time.time() - start)
    finally:
        spark.stop()


def run_recover(config: SinkConfig, args: argparse.Namespace) -> None:
    client = default_client(config.doris)
    try:
        state = recover_staged_file(
            args.label,
            config.doris.database,
            args.table,
            config.loader_options(),
            default_filesystem(config),
            client,
            max_retries=config.doris.max_retries,
            retry_wait_seconds=config.doris.retry_wait_seconds,
        )
    finally:
        client.close()
    if state is LoaderState.RETAINED:
        logger.error("Label %s still not loaded, staging file kept", args.label)
        sys.exit(2)
    logger.info("Label %s recovered", args.label)


COMMANDS = {
    "stream": run_stream,
    "recover": run_recover,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Broker load sink for Doris / Palo")
    subparsers = parser.add_subparsers(dest="command", required=True)

    stream = subparsers.add_parser("stream", help="Stream a file source into a table.")
    stream.add_argument("--source", required=True, help="Source directory (local path or s3a:// URI).")
    stream.add_argument("--format", default="json", choices=["json", "csv", "parquet"])
    stream.add_argument("--schema", required=True, help='DDL schema, e.g. "id INT, name STRING".')
    stream.add_argument("--table", required=True)
    stream.add_argument("--checkpoint", required=True, help="Checkpoint location.")
    stream.add_argument("--interval", default="30 seconds", help="Processing-time trigger interval.")
    stream.add_argument("--max-files-per-trigger", type=int, default=100)
    stream.add_argument("--once", action="store_true", help="Process what is available, then stop.")

    recover = subparsers.add_parser("recover", help="Load a staging file retained after timeouts.")
    recover.add_argument("--label", required=True)
    recover.add_argument("--table", required=True)
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    config = load_config()
    try:
        COMMANDS[args.command](config, args)
    except BrokerLoadError as e:
        logger.error("%s failed: %s", args.command, e)
        sys.exit(1)


if __name__ == "__main__":
    main()
