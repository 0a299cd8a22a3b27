"""Vendor adapters."""

from .dynamic_provider import DynamicProvider

__all__ = ["DynamicProvider"]
