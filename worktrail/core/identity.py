"""Project identity derived from the absolute workspace path."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def stable_hash(text: str) -> str:
    """Generate stable 13-character SHA1 hash of text.

    Args:
        text: Text to hash

    Returns:
        First 13 characters of SHA1 hex digest
    """
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:13]


@dataclass(frozen=True)
class ProjectIdentity:
    """Stable name + digest pair locating a project's history store.

    Attributes:
        name: Human-readable project name (sanitised workspace basename).
        digest: Short hash of the absolute workspace path.
        path: The resolved workspace path the identity was derived from.
    """

    name: str
    digest: str
    path: Path

    @property
    def key(self) -> str:
        return f"{self.name}_{self.digest}"

    def store_path(self, home: Path) -> Path:
        return home / self.key


def project_identity(workspace: str | Path) -> ProjectIdentity:
    """Derive the identity of the project rooted at ``workspace``.

    Same path gives the same identity across process restarts; the path is
    resolved first so relative and symlinked spellings agree.
    """
    resolved = Path(workspace).expanduser().resolve()
    name = _UNSAFE_NAME_CHARS.sub("_", resolved.name).strip("_") or "workspace"
    return ProjectIdentity(name=name, digest=stable_hash(str(resolved)), path=resolved)
