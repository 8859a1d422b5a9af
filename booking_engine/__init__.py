"""Availability and booking conflict engine for multi-tenant scheduling."""

__version__ = "0.1.0"
