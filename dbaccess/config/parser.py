"""YAML configuration loading for dbaccess."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

import yaml
from pydantic import ValidationError

from dbaccess.config.models import (
    BatchSettings,
    DatabaseType,
    DBAccessConfig,
    EnvironmentSettings,
    RetryPolicy,
)
from dbaccess.exceptions import ConfigurationError

PathLike = Union[str, Path]

# Looked up relative to the working directory, after DBACCESS_CONFIG_FILE
DEFAULT_CONFIG_NAMES = ("dbaccess.yaml", "dbaccess.yml", "config/dbaccess.yaml")

# ${NAME} or ${NAME:-fallback}
PLACEHOLDER = re.compile(r'\$\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*(?::-([^}]*))?\}')


def _resolve_placeholder(match: "re.Match[str]") -> str:
    name, fallback = match.group(1), match.group(2)
    value = os.environ.get(name)
    if value is not None:
        return value
    if fallback is not None:
        return fallback
    raise ConfigurationError(f"Required environment variable '{name}' is not set")


class ConfigParser:
    """Builds a :class:`DBAccessConfig` from a YAML document.

    The document has up to three sections, ``database``, ``retry`` and
    ``batch``. String values may reference environment variables as
    ``${NAME}`` or ``${NAME:-fallback}``; references are resolved after
    includes are applied, so only values that survive the merge need their
    variables set.

    A top-level ``include`` (a file name or a list of them, relative to the
    including file) supplies defaults. Keys the including file sets win within
    each section.
    """

    def __init__(self) -> None:
        self.env_settings = EnvironmentSettings()

    def load_config(self, config_path: Optional[PathLike] = None) -> DBAccessConfig:
        """Locate, read and validate the configuration.

        Raises:
            ConfigurationError: If no file is found, a file cannot be read or
                parsed, a required variable is unset, or validation fails.
        """
        config_file = self._find_config_file(config_path)
        document = self._read_mapping(config_file, "Configuration file")
        if not document:
            raise ConfigurationError(f"Configuration file '{config_file}' is empty")

        includes = document.pop('include', None) or []
        if isinstance(includes, str):
            includes = [includes]
        for name in includes:
            defaults = self._read_mapping(config_file.parent / name, "Included file")
            document = self._apply_defaults(defaults or {}, document)

        document = self._interpolate(document)
        try:
            return DBAccessConfig(**document)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}")

    def _find_config_file(self, config_path: Optional[PathLike]) -> Path:
        if config_path:
            path = Path(config_path)
            if not path.exists():
                raise ConfigurationError(f"Configuration file '{config_path}' not found")
            return path

        for candidate in self._candidate_files():
            if candidate.exists():
                return candidate

        raise ConfigurationError(
            "No configuration file found: set DBACCESS_CONFIG_FILE or create one of "
            + ", ".join(DEFAULT_CONFIG_NAMES)
        )

    def _candidate_files(self) -> Iterator[Path]:
        if self.env_settings.config_file:
            yield Path(self.env_settings.config_file)
        for name in DEFAULT_CONFIG_NAMES:
            yield Path.cwd() / name

    @staticmethod
    def _read_mapping(path: Path, kind: str) -> Optional[Dict[str, Any]]:
        try:
            with open(path, 'r', encoding='utf-8') as file:
                document = yaml.safe_load(file)
        except FileNotFoundError:
            raise ConfigurationError(f"{kind} '{path}' not found")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in '{path}': {e}")

        if document is not None and not isinstance(document, dict):
            raise ConfigurationError(f"{kind} '{path}' must contain a mapping of sections")
        return document

    @staticmethod
    def _apply_defaults(defaults: Dict[str, Any], document: Dict[str, Any]) -> Dict[str, Any]:
        merged = dict(defaults)
        for section, values in document.items():
            base = merged.get(section)
            if isinstance(base, dict) and isinstance(values, dict):
                merged[section] = {**base, **values}
            else:
                merged[section] = values
        return merged

    def _interpolate(self, value: Any) -> Any:
        if isinstance(value, str):
            return PLACEHOLDER.sub(_resolve_placeholder, value)
        if isinstance(value, dict):
            return {key: self._interpolate(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self._interpolate(item) for item in value]
        return value

    def create_sample_config(self, output_path: PathLike) -> None:
        """Write a MySQL sample configuration with default retry and batch sections."""
        sample = {
            'database': {
                'type': DatabaseType.MYSQL.value,
                'host': 'localhost',
                'port': 3306,
                'database': 'app',
                'username': 'app',
                'password': '${DB_PASSWORD:-app}',
                'options': {'connect_timeout': 10, 'charset': 'utf8mb4'},
            },
            'retry': RetryPolicy().model_dump(),
            'batch': BatchSettings().model_dump(),
        }

        with open(output_path, 'w', encoding='utf-8') as file:
            file.write("# dbaccess configuration, see `dbaccess config validate`\n")
            yaml.safe_dump(sample, file, default_flow_style=False, sort_keys=False)


_parser = ConfigParser()
_cached: Optional[DBAccessConfig] = None


def get_config(config_path: Optional[PathLike] = None, reload: bool = False) -> DBAccessConfig:
    """Return the process configuration, loading it on first use or when ``reload`` is set."""
    global _cached

    if reload or _cached is None:
        _cached = _parser.load_config(config_path)
    return _cached


def create_sample_config(output_path: PathLike) -> None:
    _parser.create_sample_config(output_path)
