from __future__ import annotations

from copy import deepcopy
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


def deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge updates into base without mutating inputs.

    - Keys present in updates with non-None values are merged/overwritten
    - Keys present in updates with None values are skipped (preserve base value)
    - Keys not present in updates are preserved from base
    """
    result = deepcopy(base)
    for key, value in updates.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        elif key in result and value is None:
            continue
        else:
            result[key] = value
    return result


class SummarizerConfig(BaseModel):
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    base_url: str | None = None
    max_tokens: int = Field(default=300, gt=0)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_diff_chars: int = Field(default=8000, gt=0)

    model_config = ConfigDict(extra="ignore")


class AppConfig(BaseModel):
    ignore_patterns: list[str] = Field(default_factory=list)
    verify_snapshots: bool = True
    summarizer: SummarizerConfig = Field(default_factory=SummarizerConfig)

    server_host: str = "127.0.0.1"
    server_port: int = Field(default=8765, gt=0, lt=65536)
    log_format: str = "pretty"
    log_colors: bool = True

    model_config = ConfigDict(extra="ignore")

    @field_validator("ignore_patterns")
    @classmethod
    def check_ignore_patterns(cls, patterns: list[str]) -> list[str]:
        cleaned = [p.strip() for p in patterns]
        if any(not p for p in cleaned):
            raise ValueError("Ignore patterns must be non-empty strings")
        if any("/" in p or "\\" in p for p in cleaned):
            raise ValueError(
                "Ignore patterns match a single path segment and cannot contain separators"
            )
        return cleaned

    @field_validator("log_format")
    @classmethod
    def check_log_format(cls, value: str) -> str:
        if value not in ("pretty", "json"):
            raise ValueError("log_format must be 'pretty' or 'json'")
        return value


class ConfigValidationError(ValueError):
    """Structured configuration validation error."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


def validate_config(config: dict[str, Any]) -> dict[str, Any]:
    """Validate configuration using the Pydantic schema.

    Raises:
        ConfigValidationError: With structured list of human-readable error messages.
    """
    try:
        app_config = AppConfig.model_validate(config)
        return app_config.model_dump(mode="json")
    except ValidationError as e:
        raise ConfigValidationError(_extract_validation_errors(e)) from e


def _extract_validation_errors(exc: ValidationError) -> list[str]:
    """Convert Pydantic ValidationError to list of human-readable messages."""
    errors = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err["loc"]) if err["loc"] else "config"
        msg = err["msg"]

        if msg.startswith("Value error, "):
            msg = msg[len("Value error, ") :]

        if err["type"] == "missing":
            errors.append(f"Missing required field: {loc}")
        elif err["type"] == "string_type":
            errors.append(f"Expected string at '{loc}'")
        elif err["type"] in ("int_type", "int_parsing"):
            errors.append(f"Expected integer at '{loc}'")
        elif err["type"] in ("bool_type", "bool_parsing"):
            errors.append(f"Expected boolean at '{loc}'")
        elif err["type"] == "list_type":
            errors.append(f"Expected list at '{loc}'")
        else:
            errors.append(f"{loc}: {msg}")

    return errors if errors else ["Invalid configuration"]

