"""Broker load statement construction."""

from __future__ import annotations

import re
from dataclasses import dataclass

from brokerload.options import LoaderOptions

NEGATIVE_KEYWORD = "NEGATIVE"
# palo.load.delete.flag is validated but not rendered: batches are always plain loads
LOAD_DELETE_FLAG_VALUE = "false"

_WHITESPACE_RUN = re.compile(r"\s*[\r\n]+\s*")


@dataclass(frozen=True)
class LoadCommandParams:
    database: str
    label: str
    table: str
    file_uri: str
    broker: str
    username: str
    password: str
    timeout: int = 0
    max_filter_ratio: float = 0.0
    load_cmd: str = ""
    is_negative: bool = False

    @classmethod
    def from_options(
        cls, options: LoaderOptions, database: str, label: str, table: str, file_uri: str
    ) -> LoadCommandParams:
        return cls(
            database=database,
            label=label,
            table=table,
            file_uri=file_uri,
            broker=options.broker,
            username=options.username,
            password=options.password,
            timeout=options.timeout,
            max_filter_ratio=options.max_filter_ratio,
            load_cmd=options.load_cmd,
            is_negative=options.is_negative,
        )


def _single_line(fragment: str) -> str:
    return _WHITESPACE_RUN.sub(" ", fragment).strip()


def build_load_command(params: LoadCommandParams) -> str:
    """Render the single-line ``LOAD LABEL`` statement for one staged file.

    Raises:
        ValueError: the filter ratio is outside [0, 1] or the timeout is negative.
    """
    if not 0 <= params.max_filter_ratio <= 1:
        raise ValueError(f"max_filter_ratio must be within [0, 1], got {params.max_filter_ratio}")
    if params.timeout < 0:
        raise ValueError(f"timeout must be >= 0, got {params.timeout}")

    negative = f" {NEGATIVE_KEYWORD}" if params.is_negative else ""
    load_cmd = _single_line(params.load_cmd)
    into = f"INTO TABLE {params.table} {load_cmd}" if load_cmd else f"INTO TABLE {params.table}"

    return (
        f"LOAD LABEL {params.database}.{params.label} "
        f'(DATA INFILE("{params.file_uri}"){negative} {into}) '
        f"WITH BROKER {params.broker} "
        f'("username"="{params.username}","password"="{params.password}") '
        f'PROPERTIES("timeout"="{params.timeout}",'
        f'"max_filter_ratio"="{float(params.max_filter_ratio)}",'
        f'"load_delete_flag"="{LOAD_DELETE_FLAG_VALUE}")'
    )


def mask_password(command: str, password: str) -> str:
    """Hide the broker password before a command is logged."""
    if not password:
        return command
    return command.replace(f'"password"="{password}"', '"password"="******"')
