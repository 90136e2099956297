"""shellfix - background fix suggestions for failed shell commands."""

__version__ = "0.1.0"
