"""Load testRigor configuration from a YAML file and the environment."""

import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError

from testrigor.ci_tool.exceptions import ConfigError
from testrigor.ci_tool.models.settings import TestRigorConfig

ENV_VARS = {
    "auth_token": "TESTRIGOR_AUTH_TOKEN",
    "app_id": "TESTRIGOR_APP_ID",
    "api_url": "TESTRIGOR_API_URL",
    "report_api_url": "TESTRIGOR_REPORT_API_URL",
    "error_on_test_failure": "TR_CI_ERROR_ON_TEST_FAILURE",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def default_config_path() -> Path:
    """Return the default configuration file location."""
    return Path.home() / ".testrigor.yaml"


def _read_config_file(path: Path) -> dict[str, object]:
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping")

    section = data.get("testrigor", data)
    if not isinstance(section, Mapping):
        raise ConfigError(f"'testrigor' section in {path} must be a mapping")
    return {str(key).replace("-", "_"): value for key, value in section.items()}


def _read_environment(environ: Mapping[str, str]) -> dict[str, object]:
    values: dict[str, object] = {}
    for field, env_name in ENV_VARS.items():
        if env_name not in environ:
            continue
        value = environ[env_name]
        if field == "error_on_test_failure":
            values[field] = value.strip().lower() in _TRUE_VALUES
        else:
            values[field] = value
    return values


def load_config(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> TestRigorConfig:
    """Load configuration, letting environment variables override the file.

    Args:
        path: Explicit config file; the default location is used if omitted
        environ: Environment mapping, ``os.environ`` if omitted

    Returns:
        Validated configuration

    Raises:
        ConfigError: If the file is unreadable or required values are missing

    """
    environ = os.environ if environ is None else environ

    if path is not None and not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    config_file = path or default_config_path()
    values = _read_config_file(config_file) if config_file.exists() else {}
    values.update(_read_environment(environ))

    if not values.get("auth_token"):
        raise ConfigError(
            "auth token is required. Set TESTRIGOR_AUTH_TOKEN environment "
            "variable or auth_token in the config file"
        )
    if not values.get("app_id"):
        raise ConfigError(
            "app ID is required. Set TESTRIGOR_APP_ID environment "
            "variable or app_id in the config file"
        )

    try:
        return TestRigorConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
