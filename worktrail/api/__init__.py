"""HTTP API for a single workspace."""
