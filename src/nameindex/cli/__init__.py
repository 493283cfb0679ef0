"""Command line interface."""

from nameindex.cli.app import app

__all__ = ["app"]
