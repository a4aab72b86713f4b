"""WorkTrail: private, append-only snapshot history for a working directory."""

__version__ = "0.1.0"
