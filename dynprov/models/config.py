"""Configuration management for the dynamic provider engine.

Two layers live here:

- Vendor documents (``EndpointDefinition``, ``MappingDefinition``,
  ``ProviderConfig``) authored externally and loaded from YAML/JSON.
- Engine settings (``EngineSettings``) with the YAML < ENV < CLI override
  chain managed by ``ConfigManager``.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from dynprov.exceptions import ConfigurationError, UniversalErrorType
from dynprov.models.data_models import AuthType, ExtractionType, NumberStatus


# Vendor-authored type names from older configs
_TYPE_ALIASES = {
    "json_object": ExtractionType.OBJECT,
    "json_array": ExtractionType.ARRAY,
    "json_dictionary": ExtractionType.DICTIONARY,
    "json_value": ExtractionType.VALUE,
    "json_array_positional": ExtractionType.ARRAY_POSITIONAL,
    "json_keyed_value": ExtractionType.KEYED_VALUE,
    "json_nested_array": ExtractionType.NESTED_ARRAY,
}


def _stringify_values(v: Optional[Dict[str, Any]]) -> Dict[str, str]:
    return {str(k): str(val) for k, val in (v or {}).items()}


class EndpointDefinition(BaseModel):
    """How to reach one logical operation for one vendor."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    method: str = Field(default="GET", description="HTTP method")
    path: str = Field(description="Absolute URL or path relative to the base URL")
    query_params: Dict[str, str] = Field(default_factory=dict, alias="queryParams")
    headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        """Normalize and restrict the HTTP method."""
        method = v.upper()
        if method not in ("GET", "POST", "PUT", "DELETE", "PATCH"):
            raise ValueError(f"Unsupported HTTP method: {v}")
        return method

    @field_validator("query_params", "headers", mode="before")
    @classmethod
    def coerce_strings(cls, v: Any) -> Dict[str, str]:
        return _stringify_values(v)


class NestingLevels(BaseModel):
    """Multi-level (country > service > operator) extraction options."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    depth: Optional[int] = None
    extract_operators: bool = Field(default=False, alias="extractOperators")
    providers_key: Optional[str] = Field(default=None, alias="providersKey")
    required_field: Optional[str] = Field(default=None, alias="requiredField")


class MappingDefinition(BaseModel):
    """How to turn one operation's raw response into canonical records."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: ExtractionType = ExtractionType.OBJECT
    root_path: Optional[str] = Field(default=None, alias="rootPath")
    fields: Dict[str, str] = Field(default_factory=dict)
    regex: Optional[str] = None
    separator: Optional[str] = None
    transform: Dict[str, str] = Field(default_factory=dict)
    nesting_levels: Optional[NestingLevels] = Field(default=None, alias="nestingLevels")
    conditional_fields: Dict[str, Dict[str, str]] = Field(default_factory=dict, alias="conditionalFields")
    status_mapping: Dict[str, NumberStatus] = Field(default_factory=dict, alias="statusMapping")
    error_patterns: Dict[UniversalErrorType, str] = Field(default_factory=dict, alias="errorPatterns")
    error_field: Optional[str] = Field(default=None, alias="errorField")
    icon_url_template: Optional[str] = Field(default=None, alias="iconUrlTemplate")
    value_field: Optional[str] = Field(default=None, alias="valueField")
    key_field: Optional[str] = Field(default=None, alias="keyField")
    position_fields: Dict[str, str] = Field(
        default_factory=dict, alias="positionFields", description="Array index -> target field"
    )
    header_row: bool = Field(default=False, alias="headerRow")
    field_fallbacks: Dict[str, List[str]] = Field(
        default_factory=dict, alias="fieldFallbacks", description="Target field -> paths tried when it is missing"
    )

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        """Accept the legacy ``json_*`` spellings."""
        if isinstance(v, str):
            return _TYPE_ALIASES.get(v.lower(), v.lower())
        return v

    @field_validator("fields", "transform", "position_fields", mode="before")
    @classmethod
    def coerce_strings(cls, v: Any) -> Dict[str, str]:
        return _stringify_values(v)

    @field_validator("field_fallbacks", mode="before")
    @classmethod
    def coerce_fallbacks(cls, v: Any) -> Dict[str, List[str]]:
        """A single path may be given as a ``|`` chain instead of a list."""
        result = {}
        for target, paths in (v or {}).items():
            if isinstance(paths, str):
                paths = paths.split("|")
            result[str(target)] = [str(p).strip() for p in paths if str(p).strip()]
        return result

    @field_validator("conditional_fields", mode="before")
    @classmethod
    def coerce_conditional(cls, v: Any) -> Dict[str, Dict[str, str]]:
        return {str(path): _stringify_values(fields) for path, fields in (v or {}).items()}

    @field_validator("status_mapping", mode="before")
    @classmethod
    def coerce_status_keys(cls, v: Any) -> Dict[str, Any]:
        return {str(k): val for k, val in (v or {}).items()}


class ProviderConfig(BaseModel):
    """One vendor's complete configuration."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(description="Provider identifier")
    api_base_url: str = Field(default="", alias="apiBaseUrl")
    auth_type: AuthType = Field(default=AuthType.NONE, alias="authType")
    auth_key: Optional[str] = Field(default=None, alias="authKey")
    auth_query_param: Optional[str] = Field(default=None, alias="authQueryParam")
    auth_header: Optional[str] = Field(default=None, alias="authHeader")
    rate_limit_delay_ms: float = Field(default=1000.0, alias="rateLimitDelay")
    auto_detect: bool = Field(default=True, alias="autoDetect")
    endpoints: Dict[str, EndpointDefinition] = Field(default_factory=dict)
    mappings: Dict[str, MappingDefinition] = Field(default_factory=dict)
    error_patterns: Dict[UniversalErrorType, str] = Field(default_factory=dict, alias="errorPatterns")
    error_field: Optional[str] = Field(default=None, alias="errorField")

    @field_validator("api_base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL format."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://, got: {v}")
        return v

    @field_validator("rate_limit_delay_ms")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"rateLimitDelay must not be negative, got: {v}")
        return v

    @field_validator("auth_key", mode="before")
    @classmethod
    def expand_env_key(cls, v: Any) -> Any:
        """``env:NAME`` reads the credential from the environment."""
        if isinstance(v, str) and v.startswith("env:"):
            return os.environ.get(v[4:], "")
        return v


class EngineSettings(BaseModel):
    """Runtime knobs shared by every adapter instance."""

    request_timeout: float = Field(default=30.0, description="Per-attempt HTTP timeout in seconds")
    max_attempts: int = Field(default=3, description="Total attempts per request including the first")
    retry_base_delay: float = Field(default=1.0, description="Base delay in seconds for backoff")
    retry_after_buffer: float = Field(default=1.0, description="Seconds added on top of Retry-After")
    circuit_breaker_failure_threshold: int = Field(default=5, description="Transport failures before opening")
    circuit_breaker_cooldown: float = Field(default=30.0, description="Cooldown period in seconds")
    batch_status_concurrency: int = Field(default=10, description="Parallel getStatus calls in batch fallback")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("max_attempts", "circuit_breaker_failure_threshold", "batch_status_concurrency")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"value must be positive, got: {v}")
        return v

    @field_validator("request_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"request_timeout must be positive, got: {v}")
        return v

    @classmethod
    def env_overrides(cls) -> Dict[str, Any]:
        """Collect ``DYNPROV_*`` environment overrides as raw values."""
        env_mappings = {
            "DYNPROV_REQUEST_TIMEOUT": "request_timeout",
            "DYNPROV_MAX_ATTEMPTS": "max_attempts",
            "DYNPROV_RETRY_BASE_DELAY": "retry_base_delay",
            "DYNPROV_CB_THRESHOLD": "circuit_breaker_failure_threshold",
            "DYNPROV_CB_COOLDOWN": "circuit_breaker_cooldown",
            "DYNPROV_BATCH_CONCURRENCY": "batch_status_concurrency",
            "DYNPROV_LOG_LEVEL": "log_level",
        }
        return {
            field_name: os.environ[env_var]
            for env_var, field_name in env_mappings.items()
            if env_var in os.environ
        }

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Create settings with environment variable overrides."""
        return cls(**cls.env_overrides())


def _read_document(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping at the top level")
    return data


def load_provider_config(path: Path) -> ProviderConfig:
    """Load one vendor's configuration from a YAML or JSON document.

    The document may either be the provider mapping itself or hold it under
    a top-level ``provider`` key.
    """
    data = _read_document(Path(path))
    document = data.get("provider", data)
    try:
        return ProviderConfig.model_validate(document)
    except ValueError as e:
        raise ConfigurationError(f"Invalid provider config in {path}: {e}") from e


class ConfigManager:
    """Manages configuration loading with override precedence."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else Path("config/provider.yaml")
        self._settings: Optional[EngineSettings] = None

    def load_settings(self, cli_overrides: Optional[Dict] = None) -> EngineSettings:
        """
        Load engine settings with override precedence: CLI > ENV > YAML.

        Args:
            cli_overrides: Optional dictionary of CLI flag overrides

        Returns:
            Fully merged EngineSettings instance

        Raises:
            ConfigurationError: If validation fails
        """
        merged: Dict[str, Any] = {}

        if self.config_file.exists():
            yaml_settings = _read_document(self.config_file).get("settings") or {}
            merged.update(yaml_settings)

        merged.update(EngineSettings.env_overrides())

        if cli_overrides:
            merged.update({k: v for k, v in cli_overrides.items() if v is not None})

        try:
            self._settings = EngineSettings(**merged)
        except ValueError as e:
            raise ConfigurationError(f"Invalid engine settings: {e}") from e
        return self._settings

    def load_provider(self) -> ProviderConfig:
        return load_provider_config(self.config_file)

    @property
    def settings(self) -> EngineSettings:
        """Get the loaded settings."""
        if self._settings is None:
            self._settings = self.load_settings()
        return self._settings
