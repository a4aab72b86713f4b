"""Snapshot engine services: mirroring, capture, restore, integrity and diffs."""
