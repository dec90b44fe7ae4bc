"""HTTP API for the dashboard."""

from wpdock.api.app import create_app

__all__ = ["create_app"]
