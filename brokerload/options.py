"""Loader options: contract validation and typed view of the raw option mapping."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import jsonschema

from brokerload.errors import ConfigurationError

_CONTRACTS_DIR = Path(__file__).resolve().parent / "contracts"

DATA_DIR = "palo.data.dir"
LOADCMD = "palo.loadcmd"
UGI = "hadoop.job.ugi"
BROKER_NAME = "palo.broker.name"
TIMEOUT = "palo.timeout"
MAX_FILTER_RATIO = "palo.max.filter.ratio"
LOAD_DELETE_FLAG = "palo.load.delete.flag"
IS_NEGATIVE = "palo.is.negative"

_LABEL_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def _load_contract(name: str) -> dict:
    schema_path = _CONTRACTS_DIR / f"{name}.schema.json"
    return json.loads(schema_path.read_text(encoding="utf-8"))


_VALIDATOR = jsonschema.Draft7Validator(_load_contract("loader_options"))


def _describe(error: jsonschema.ValidationError) -> str:
    if error.validator == "required":
        return error.message
    key = error.path[0] if error.path else "<options>"
    return f"{key}: {error.message}"


def validate_label(label: str) -> str:
    if not label or not _LABEL_PATTERN.match(label):
        raise ConfigurationError(f"Invalid load label {label!r}: only letters, digits, '_' and '-' are allowed")
    return label


@dataclass(frozen=True)
class LoaderOptions:
    """Typed loader options, built once per batch."""

    data_dir: str
    load_cmd: str
    username: str
    password: str
    broker: str
    timeout: int = 0
    max_filter_ratio: float = 0.0
    load_delete_flag: str = "false"
    is_negative: bool = False

    @classmethod
    def from_mapping(cls, options: Mapping[str, str]) -> LoaderOptions:
        """Validate ``options`` against the options contract and convert it.

        Raises:
            ConfigurationError: a required key is absent or a value does not
                match its expected format.
        """
        errors = sorted(_VALIDATOR.iter_errors(dict(options)), key=lambda e: list(e.path))
        if errors:
            raise ConfigurationError("; ".join(_describe(e) for e in errors))

        username, password = options[UGI].split(",", 1)
        max_filter_ratio = float(options.get(MAX_FILTER_RATIO, "0"))
        if not 0 <= max_filter_ratio <= 1:
            raise ConfigurationError(f"{MAX_FILTER_RATIO} must be within [0, 1], got {max_filter_ratio}")

        return cls(
            data_dir=options[DATA_DIR],
            load_cmd=options[LOADCMD],
            username=username,
            password=password,
            broker=options[BROKER_NAME],
            timeout=int(options.get(TIMEOUT, "0")),
            max_filter_ratio=max_filter_ratio,
            load_delete_flag=options.get(LOAD_DELETE_FLAG, "false"),
            is_negative=options.get(IS_NEGATIVE, "false").lower() == "true",
        )
