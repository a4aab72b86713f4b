"""Default configuration values for WorkTrail."""

from typing import Any

# Directories named exactly like a rule, and files whose name contains one,
# are never mirrored.
DEFAULT_IGNORE_PATTERNS: list[str] = [
    # Dependencies
    "node_modules",
    # Version control (including the store's own metadata)
    ".git",
    ".gitignore",
    ".gitattributes",
    ".gitmodules",
    # Editor / project metadata
    ".vscode",
    # Build outputs
    "out",
    "dist",
    "build",
    # OS noise
    ".DS_Store",
    "Thumbs.db",
    # Environments
    "venv",
    "env",
    ".venv",
    ".env",
]


def get_default_config() -> dict[str, Any]:
    """Return the default configuration written on first start."""
    return {
        "ignore_patterns": list(DEFAULT_IGNORE_PATTERNS),
        "verify_snapshots": True,
        "summarizer": {
            "model": "gpt-4o-mini",
            "api_key": None,
            "base_url": None,
            "max_tokens": 300,
            "temperature": 0.3,
            "max_diff_chars": 8000,
        },
        "server_host": "127.0.0.1",
        "server_port": 8765,
        "log_format": "pretty",
        "log_colors": True,
    }
