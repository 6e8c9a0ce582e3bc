"""GTA VI countdown bot."""

__version__ = "1.0.0"
