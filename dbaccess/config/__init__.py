"""Configuration management for dbaccess."""

from dbaccess.config.models import (
    DatabaseType,
    DatabaseConfig,
    RetryPolicy,
    BatchSettings,
    DBAccessConfig,
    EnvironmentSettings,
)
from dbaccess.config.parser import (
    ConfigParser,
    get_config,
    create_sample_config,
)

__all__ = [
    # Models
    "DatabaseType",
    "DatabaseConfig",
    "RetryPolicy",
    "BatchSettings",
    "DBAccessConfig",
    "EnvironmentSettings",
    # Parser
    "ConfigParser",
    "get_config",
    "create_sample_config",
]
