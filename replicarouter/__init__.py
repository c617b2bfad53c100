"""Multi-server MySQL routing for the commercial scheduler."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import AppConfig, DatabaseProfileConfig, LoggingConfig, load_config, save_config
from .connections import AiomysqlConnectionFactory, ConnectionFactory, RouterConnection, WriteOutcome
from .errors import (
    ConnectionFailure,
    NoProfilesConfigured,
    OperationCancelled,
    QueryExecutionFailure,
    RouterError,
)
from .models import DatabaseProfile, SslMode
from .profiles import ConfigProfileSource, ProfileSource, StaticProfileSource
from .results import FailureKind, FanOutResult, ProfileResult, ReadResult
from .router import MAX_READ_CONCURRENCY, DatabaseRouter

__all__ = [
    "AiomysqlConnectionFactory",
    "AppConfig",
    "ConfigProfileSource",
    "ConnectionFactory",
    "ConnectionFailure",
    "DatabaseProfile",
    "DatabaseProfileConfig",
    "DatabaseRouter",
    "FailureKind",
    "FanOutResult",
    "LoggingConfig",
    "MAX_READ_CONCURRENCY",
    "NoProfilesConfigured",
    "OperationCancelled",
    "ProfileResult",
    "ProfileSource",
    "QueryExecutionFailure",
    "ReadResult",
    "RouterConnection",
    "RouterError",
    "SslMode",
    "StaticProfileSource",
    "WriteOutcome",
    "__version__",
    "load_config",
    "save_config",
]
