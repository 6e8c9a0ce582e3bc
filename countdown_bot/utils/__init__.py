"""Shared logging, configuration and countdown helpers."""
