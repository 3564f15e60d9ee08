"""Typed YAML configuration for the NDC client.

The config file maps protocol methods to transport parameters. It may
reference the method being sent through ``{{request_name}}`` placeholders,
so the raw text is kept and rendered per call before being parsed into
pydantic models. All failures surface as ``ConfigurationError`` before
any network I/O happens.

Example::

    server:
      url_prod: https://api.example.com/ndc/{{request_name}}
      url_test: https://test.example.com/ndc/{{request_name}}
    rest:
      headers:
        Content-Type: application/xml
        X-NDC-Method: "{{request_name}}"
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from ndc_client.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

TEMPLATE_VARS = ("request_name",)

_URL_PREFIX = "url_"


def _to_str(value: Any) -> str:
    """Render a YAML scalar the way it was written."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def config_has_template_vars(raw: str) -> bool:
    """Whether the raw config text references any template variable."""
    return any(f"{{{{{name}}}}}" in raw for name in TEMPLATE_VARS)


def render_template(raw: str, method: str) -> str:
    """Substitute template variables for one message."""
    values = {"request_name": method}
    for name in TEMPLATE_VARS:
        raw = raw.replace(f"{{{{{name}}}}}", values[name])
    return raw


# =============================================================================
# MODELS
# =============================================================================


class ServerConfig(BaseModel):
    """Target URLs keyed by environment name.

    Built from the ``server`` mapping; every ``url_<env>`` key becomes
    ``urls[<env>]``. Other keys are ignored.
    """

    model_config = ConfigDict(frozen=True)

    urls: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_urls(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "urls" in data:
            return data
        return {
            "urls": {
                str(key)[len(_URL_PREFIX) :]: _to_str(value)
                for key, value in data.items()
                if str(key).startswith(_URL_PREFIX) and value is not None
            }
        }

    def url_for(self, environment: str) -> str:
        """Get the URL for an environment.

        Raises:
            ConfigurationError: If ``url_<environment>`` is not configured.
        """
        try:
            return self.urls[environment]
        except KeyError:
            available = ", ".join(sorted(self.urls)) or "none"
            raise ConfigurationError(
                f"No server.{_URL_PREFIX}{environment} in configuration (available: {available})"
            ) from None


class RestConfig(BaseModel):
    """Protocol-derived request headers."""

    model_config = ConfigDict(frozen=True)

    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("headers", mode="before")
    @classmethod
    def _stringify_headers(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): _to_str(v) for k, v in value.items() if v is not None}
        return value


class NDCConfig(BaseModel):
    """Resolved configuration for one message."""

    model_config = ConfigDict(frozen=True)

    server: ServerConfig
    rest: RestConfig = Field(default_factory=RestConfig)


def parse_config(text: str, source: str = "<string>") -> NDCConfig:
    """Parse and validate rendered YAML config text.

    Raises:
        ConfigurationError: On malformed YAML or a config that does not
            match the schema.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed YAML in {source}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{source}: top level must be a mapping")

    try:
        return NDCConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {source}: {e}") from e


class ConfigLoader:
    """Holds the raw config text and resolves it per message method.

    Usage::

        loader = ConfigLoader.from_file("ndc.yaml")
        config = loader.resolve("AirShoppingRQ")
        url = config.server.url_for("prod")
    """

    def __init__(self, raw: str, *, source: str = "<string>") -> None:
        self.raw = raw
        self.source = source
        self.has_template_vars = config_has_template_vars(raw)
        self._static: NDCConfig | None = None
        if not self.has_template_vars:
            # No placeholders: parse once, fail early
            self._static = parse_config(raw, source)

    @classmethod
    def from_file(cls, path: str | Path) -> ConfigLoader:
        """Read a config file.

        Raises:
            ConfigurationError: If the file cannot be read.
        """
        path = Path(path)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read NDC config {path}: {e}") from e
        logger.debug("Loaded NDC config from %s", path)
        return cls(raw, source=str(path))

    def resolve(self, method: str) -> NDCConfig:
        """Get the configuration for a message method."""
        if self._static is not None:
            return self._static
        return parse_config(render_template(self.raw, method), self.source)
