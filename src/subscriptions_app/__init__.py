"""Patreon subscriber sync and Discord lookup bot."""

__version__ = "0.1.0"
