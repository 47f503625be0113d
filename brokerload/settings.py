"""Centralised configuration loaded from environment variables.

Env vars are sourced from the deployment's .env (or docker-compose env_file).
Defaults match a single-node Doris + MinIO development stack so the sink works
out-of-the-box locally.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

# Loader option keys mirrored from environment variables.
_OPTION_ENV_VARS = {
    "palo.data.dir": "BROKERLOAD_DATA_DIR",
    "palo.loadcmd": "BROKERLOAD_LOADCMD",
    "hadoop.job.ugi": "BROKERLOAD_UGI",
    "palo.broker.name": "BROKERLOAD_BROKER",
    "palo.timeout": "BROKERLOAD_TIMEOUT",
    "palo.max.filter.ratio": "BROKERLOAD_MAX_FILTER_RATIO",
    "palo.load.delete.flag": "BROKERLOAD_DELETE_FLAG",
    "palo.is.negative": "BROKERLOAD_NEGATIVE",
}


@dataclass(frozen=True)
class MinioConfig:
    endpoint: str = field(default_factory=lambda: os.getenv("MINIO_ENDPOINT", "http://localhost:9000"))
    access_key: str = field(default_factory=lambda: os.getenv("MINIO_ROOT_USER", "minioadmin"))
    secret_key: str = field(default_factory=lambda: os.getenv("MINIO_ROOT_PASSWORD", "minioadmin123"))
    secure: bool = False
    bucket_staging: str = field(default_factory=lambda: os.getenv("MINIO_BUCKET_STAGING", "brokerload-staging"))


@dataclass(frozen=True)
class DorisConfig:
    host: str = field(default_factory=lambda: os.getenv("DORIS_HOST", "localhost"))
    port: int = field(default_factory=lambda: int(os.getenv("DORIS_PORT", "9030")))
    database: str = field(default_factory=lambda: os.getenv("DORIS_DB", "demo"))
    user: str = field(default_factory=lambda: os.getenv("DORIS_USER", "root"))
    password: str = field(default_factory=lambda: os.getenv("DORIS_PASSWORD", ""))
    query_timeout: int = field(default_factory=lambda: int(os.getenv("DORIS_QUERY_TIMEOUT", "600")))
    max_retries: int = field(default_factory=lambda: int(os.getenv("DORIS_QUERY_MAX_RETRIES", "3")))
    retry_wait_seconds: float = field(default_factory=lambda: float(os.getenv("DORIS_RETRY_WAIT_SECONDS", "10")))


@dataclass(frozen=True)
class SparkConfig:
    master: str = field(default_factory=lambda: os.getenv("SPARK_MASTER", "local[*]"))
    app_name: str = "brokerload-sink"


@dataclass(frozen=True)
class SinkConfig:
    staging_fs: str = field(default_factory=lambda: os.getenv("BROKERLOAD_STAGING_FS", "local"))
    label_prefix: str = field(default_factory=lambda: os.getenv("BROKERLOAD_LABEL_PREFIX", "brokerload"))
    minio: MinioConfig = field(default_factory=MinioConfig)
    doris: DorisConfig = field(default_factory=DorisConfig)
    spark: SparkConfig = field(default_factory=SparkConfig)

    def loader_options(self) -> dict[str, str]:
        """Collect loader options from the environment.

        Unset variables are left out so that option validation reports them
        as missing rather than silently defaulting.
        """
        options = {}
        for key, env_var in _OPTION_ENV_VARS.items():
            value = os.getenv(env_var)
            if value is not None:
                options[key] = value
        return options


def load_config() -> SinkConfig:
    return SinkConfig()
