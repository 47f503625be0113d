"""Spark session factory for the streaming sink.

Staging never goes through Spark (partitions write with the MinIO SDK), so
S3A is only configured when the stream itself reads or checkpoints on
``s3a://`` paths.
"""

from __future__ import annotations

from pyspark.sql import SparkSession

from brokerload.settings import MinioConfig, SinkConfig

S3A_SCHEME = "s3a://"


def needs_s3a(*paths: str | None) -> bool:
    return any(path and path.startswith(S3A_SCHEME) for path in paths)


def _s3a_conf(minio: MinioConfig) -> dict[str, str]:
    return {
        "spark.hadoop.fs.s3a.impl": "org.apache.hadoop.fs.s3a.S3AFileSystem",
        "spark.hadoop.fs.s3a.endpoint": minio.endpoint,
        "spark.hadoop.fs.s3a.access.key": minio.access_key,
        "spark.hadoop.fs.s3a.secret.key": minio.secret_key,
        "spark.hadoop.fs.s3a.aws.credentials.provider": "org.apache.hadoop.fs.s3a.SimpleAWSCredentialsProvider",
        "spark.hadoop.fs.s3a.path.style.access": "true",
        "spark.hadoop.fs.s3a.connection.ssl.enabled": str(minio.secure).lower(),
    }


def spark_conf(config: SinkConfig, *paths: str | None) -> dict[str, str]:
    """Session settings for a stream touching ``paths`` (source, checkpoint)."""
    if needs_s3a(*paths):
        return _s3a_conf(config.minio)
    return {}


def create_spark_session(config: SinkConfig, *paths: str | None) -> SparkSession:
    builder = SparkSession.builder.master(config.spark.master).appName(config.spark.app_name)
    for key, value in spark_conf(config, *paths).items():
        builder = builder.config(key, value)
    return builder.getOrCreate()
