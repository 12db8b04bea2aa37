"""Archive, index, and search past AI coding assistant conversations."""

__version__ = "0.1.0"
