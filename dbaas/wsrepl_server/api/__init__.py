"""
API module for workspace replication.

This module provides the HTTP interface over the replication service.
"""

from .http_server import create_app, router

__all__ = [
    "create_app",
    "router",
]
