"""Pydantic models for dbaccess configuration."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import (
    BaseModel,
    Field,
    field_validator,
    model_validator,
    AliasChoices,
    ConfigDict,
)
from pydantic_settings import BaseSettings


class DatabaseType(str, Enum):
    """Supported database types."""
    MYSQL = "mysql"
    SQLITE = "sqlite"


class RetryPolicy(BaseModel):
    """Driver-side recovery policy applied after a failed statement."""
    retry_attempts: int = Field(default=3, ge=0, le=10, description="Recovery attempts before a statement is reported failed")
    retry_delay: float = Field(default=0.5, ge=0.0, le=60.0, description="Delay between recovery attempts in seconds")


class BatchSettings(BaseModel):
    """Defaults for insert batching."""
    max_statement_size: int = Field(default=1024 * 1024, ge=64, description="Largest INSERT statement in bytes")
    row_separator: str = Field(default=",", min_length=1)


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    model_config = ConfigDict(populate_by_name=True)

    type: DatabaseType = Field(validation_alias=AliasChoices("type", "driver", "engine"))
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = Field(default=None, validation_alias=AliasChoices("username", "user"))
    password: Optional[str] = None
    unix_socket: Optional[str] = None
    path: Optional[str] = None  # For SQLite
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('port')
    def validate_port(cls, v):
        """Validate port number range."""
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @model_validator(mode='after')
    def validate_database_config(self):
        """Validate database-specific required fields."""
        if self.type == DatabaseType.SQLITE:
            if not (self.path or self.database):
                raise ValueError("SQLite databases require a 'path' or 'database' field")
            if not self.path:
                # Allow configs that specify `database` instead of `path`
                object.__setattr__(self, "path", self.database)
            return self

        if not (self.host or self.unix_socket):
            raise ValueError(f"{self.type.value} databases require 'host' or 'unix_socket'")
        for field in ('database', 'username'):
            if not getattr(self, field):
                raise ValueError(f"{self.type.value} databases require '{field}' field")
        return self


class DBAccessConfig(BaseModel):
    """Main configuration model for dbaccess."""
    database: DatabaseConfig
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    batch: BatchSettings = Field(default_factory=BatchSettings)


class EnvironmentSettings(BaseSettings):
    """Environment-specific settings."""
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)
    config_file: Optional[str] = Field(default=None)

    class Config:
        env_prefix = "DBACCESS_"
        case_sensitive = False
