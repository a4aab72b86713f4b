"""Structured snapshot message: optional prompt plus capture timestamp.

Serialized form stored as the commit message::

    "{prompt} | Snapshot @ {timestamp}"   when a prompt is given
    "Snapshot @ {timestamp}"              otherwise

The timestamp is ISO-8601 UTC with millisecond precision and a ``Z`` suffix.
Prompts containing the delimiter are rejected so every stored message parses
back to the record it was built from.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from worktrail.config.constants import SNAPSHOT_DELIMITER, SNAPSHOT_PREFIX
from worktrail.errors import ValidationError


def utc_timestamp(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(UTC)
    return (
        moment.astimezone(UTC)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def parse_timestamp(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def check_prompt(prompt: str | None) -> str:
    """Normalize a user prompt, rejecting the reserved delimiter."""
    text = (prompt or "").strip()
    if SNAPSHOT_DELIMITER.strip() in text:
        raise ValidationError(
            f"Prompt cannot contain the reserved text '{SNAPSHOT_DELIMITER.strip()}'"
        )
    if "\n" in text or "\r" in text:
        raise ValidationError("Prompt must be a single line")
    return text


@dataclass(frozen=True)
class SnapshotMessage:
    prompt: str
    timestamp: str | None

    @classmethod
    def create(
        cls, prompt: str | None = None, moment: datetime | None = None
    ) -> SnapshotMessage:
        return cls(prompt=check_prompt(prompt), timestamp=utc_timestamp(moment))

    @classmethod
    def parse(cls, message: str) -> SnapshotMessage:
        """Split a stored message back into prompt and timestamp.

        Messages written by other tools have no delimiter and parse to an
        empty prompt and no timestamp.
        """
        text = message.strip()
        if SNAPSHOT_DELIMITER in text:
            prompt, _, timestamp = text.rpartition(SNAPSHOT_DELIMITER)
            return cls(prompt=prompt.strip(), timestamp=timestamp.strip() or None)
        if text.startswith(SNAPSHOT_PREFIX):
            return cls(prompt="", timestamp=text[len(SNAPSHOT_PREFIX) :].strip() or None)
        return cls(prompt="", timestamp=None)

    @property
    def moment(self) -> datetime | None:
        return parse_timestamp(self.timestamp) if self.timestamp else None

    def format(self) -> str:
        timestamp = self.timestamp or utc_timestamp()
        if self.prompt:
            return f"{self.prompt}{SNAPSHOT_DELIMITER}{timestamp}"
        return f"{SNAPSHOT_PREFIX}{timestamp}"

    def __str__(self) -> str:
        return self.format()
