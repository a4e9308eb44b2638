"""
Tools module for workspace replication.

This module provides the command-line interface.
"""

from .replicate_cli import ReplicateCLI, main

__all__ = ["ReplicateCLI", "main"]
