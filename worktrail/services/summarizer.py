"""Natural-language summary and risk note for a snapshot diff.

The engine only hands over raw diff text and consumes two strings back; the
model behind it is an OpenAI-compatible chat endpoint reached through
langchain_openai.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from langchain_core.messages import HumanMessage
from langchain_openai import ChatOpenAI

from worktrail.config.settings import Settings
from worktrail.errors import ValidationError, WorkTrailError
from worktrail.utils.logger import get_logger

logger = get_logger("summarizer")

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 300
DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_DIFF_CHARS = 8000

NO_CHANGES_SUMMARY = "No changes detected"
NO_CHANGES_RISK = "No risk - no changes were made"
SUMMARY_FALLBACK = "Unable to generate summary"
RISK_FALLBACK = "Unable to analyze risk"

PROMPT_TEMPLATE = """You are a senior software engineer reviewing code changes. Please analyze this git diff and provide:

1. A concise summary (2-3 sentences) of what changed
2. A risk analysis (1-2 sentences) highlighting any potential issues

Git diff:
```
{diff}{truncated}
```

Please respond in this exact format:
SUMMARY: [Your summary here]
RISK: [Your risk analysis here]"""

_SUMMARY_RE = re.compile(r"SUMMARY:\s*(.+?)(?=RISK:|$)", re.DOTALL)
_RISK_RE = re.compile(r"RISK:\s*(.+?)$", re.DOTALL)


@dataclass(frozen=True)
class ChangeSummary:
    summary: str
    risk: str


def build_prompt(diff_text: str, max_diff_chars: int = DEFAULT_MAX_DIFF_CHARS) -> str:
    truncated = " ... (truncated)" if len(diff_text) > max_diff_chars else ""
    return PROMPT_TEMPLATE.format(diff=diff_text[:max_diff_chars], truncated=truncated)


def parse_response(content: str) -> ChangeSummary:
    summary_match = _SUMMARY_RE.search(content)
    risk_match = _RISK_RE.search(content)
    summary = summary_match.group(1).strip() if summary_match else ""
    risk = risk_match.group(1).strip() if risk_match else ""
    return ChangeSummary(summary=summary or SUMMARY_FALLBACK, risk=risk or RISK_FALLBACK)


class ChangeSummarizer:
    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        max_diff_chars: int = DEFAULT_MAX_DIFF_CHARS,
        llm: Any | None = None,
    ):
        self.model = model
        self.max_diff_chars = max_diff_chars
        if llm is not None:
            self.llm = llm
            return

        if not api_key:
            raise ValidationError(
                "Change summaries need an API key: set OPENAI_API_KEY or "
                "summarizer.api_key in config.json"
            )
        kwargs: dict[str, Any] = {
            "model": model,
            "api_key": api_key,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if base_url:
            kwargs["base_url"] = base_url
        logger.debug("Initializing chat model", model=model, kwargs_keys=list(kwargs))
        self.llm = ChatOpenAI(**kwargs)

    @classmethod
    def from_settings(cls, settings: Settings) -> ChangeSummarizer:
        return cls(
            model=settings.summarizer_model,
            api_key=settings.summarizer_api_key,
            base_url=settings.summarizer_base_url,
            max_tokens=settings.summarizer_max_tokens,
            temperature=settings.summarizer_temperature,
            max_diff_chars=settings.summarizer_max_diff_chars,
        )

    async def summarize(self, diff_text: str) -> ChangeSummary:
        """Summarize a diff. An empty diff never reaches the model."""
        if not diff_text or not diff_text.strip():
            return ChangeSummary(summary=NO_CHANGES_SUMMARY, risk=NO_CHANGES_RISK)

        prompt = build_prompt(diff_text, self.max_diff_chars)
        logger.debug(
            "Requesting change summary",
            model=self.model,
            diff_chars=len(diff_text),
        )
        try:
            response = await self.llm.ainvoke([HumanMessage(content=prompt)])
        except Exception as exc:
            logger.error("Change summary request failed", error=str(exc))
            raise WorkTrailError(f"Change summary request failed: {exc}") from exc
        content = getattr(response, "content", "")
        if not isinstance(content, str):
            content = str(content)
        return parse_response(content)
