"""Doris (Palo) frontend client for issuing load statements."""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import URL

from brokerload.settings import DorisConfig

logger = logging.getLogger(__name__)

# ER_LOCK_WAIT_TIMEOUT, CR_SERVER_LOST (read timeout), ER_QUERY_TIMEOUT
TIMEOUT_ERROR_CODES = frozenset({1205, 2013, 3024})

_TIMEOUT_MESSAGE = re.compile(r"\btimed out\b|\btimeout (?:exceeded|expired)\b", re.IGNORECASE)


class ExecuteStatus(enum.Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    FATAL = "fatal"


@dataclass(frozen=True)
class ExecuteResult:
    status: ExecuteStatus
    error: Optional[Exception] = None

    @classmethod
    def success(cls) -> ExecuteResult:
        return cls(ExecuteStatus.SUCCESS)

    @classmethod
    def timeout(cls, error: Exception) -> ExecuteResult:
        return cls(ExecuteStatus.TIMEOUT, error)

    @classmethod
    def fatal(cls, error: Exception) -> ExecuteResult:
        return cls(ExecuteStatus.FATAL, error)


def _error_code(cause: BaseException) -> Optional[int]:
    args = getattr(cause, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


def is_timeout(error: Exception) -> bool:
    """Tell whether a database error is a (transient) timeout.

    Error class and server code decide first. Only errors without a code fall
    back to the message, and that pattern never matches the ``"timeout"=``
    property a parser error quotes back from the statement.
    """
    if isinstance(error, sa_exc.TimeoutError):
        return True
    if isinstance(error, (sa_exc.ProgrammingError, sa_exc.IntegrityError)):
        return False
    cause = error.orig if isinstance(error, sa_exc.DBAPIError) else error
    code = _error_code(cause)
    if code is not None:
        return code in TIMEOUT_ERROR_CODES
    return _TIMEOUT_MESSAGE.search(str(cause)) is not None


def classify_error(error: Exception) -> ExecuteResult:
    if is_timeout(error):
        return ExecuteResult.timeout(error)
    return ExecuteResult.fatal(error)


class DorisClient:
    """Thin wrapper around a SQLAlchemy engine speaking the MySQL protocol.

    ``execute`` never raises for database failures; it returns an
    :class:`ExecuteResult` so the caller decides whether to retry.
    """

    def __init__(self, config: DorisConfig) -> None:
        url = URL.create(
            "mysql+pymysql",
            username=config.user,
            password=config.password,
            host=config.host,
            port=config.port,
            database=config.database,
        )
        self._engine = create_engine(
            url,
            pool_pre_ping=True,
            connect_args={
                "connect_timeout": 10,
                "read_timeout": config.query_timeout,
                "write_timeout": config.query_timeout,
            },
        )
        self.database = config.database

    def execute(self, command: str) -> ExecuteResult:
        try:
            with self._engine.begin() as conn:
                conn.exec_driver_sql(command)
        except sa_exc.SQLAlchemyError as e:
            return classify_error(e)
        return ExecuteResult.success()

    def close(self) -> None:
        self._engine.dispose()
        logger.debug("Disposed engine for database %s", self.database)
