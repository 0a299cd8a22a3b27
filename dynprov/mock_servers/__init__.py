"""Mock vendor APIs for testing."""

from .app import create_app, create_json_vendor_app, create_text_vendor_app

__all__ = ["create_app", "create_json_vendor_app", "create_text_vendor_app"]
