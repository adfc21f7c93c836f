"""Label-driven issue workflow engine."""

__version__ = "0.1.0"
