"""Config-driven adapters for SMS number vendors."""

from .exceptions import (
    CircuitOpenError,
    ConfigurationError,
    DynamicProviderError,
    MissingFieldError,
    ProviderApiError,
    ProviderError,
    UniversalErrorType,
)
from .models.config import EngineSettings, ProviderConfig, load_provider_config
from .provider.dynamic_provider import DynamicProvider

__version__ = "1.0.0"

__all__ = [
    "CircuitOpenError",
    "ConfigurationError",
    "DynamicProvider",
    "DynamicProviderError",
    "EngineSettings",
    "MissingFieldError",
    "ProviderApiError",
    "ProviderConfig",
    "ProviderError",
    "UniversalErrorType",
    "load_provider_config",
]
