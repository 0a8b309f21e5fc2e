"""LLM provider abstraction via LiteLLM Router.

Used by the LLM deal assessor. Provides:
- Claude Sonnet as the primary model, GPT-4o as fallback
- Prompt injection screening of user-supplied deal text
- JSON-mode completions for structured assessments
"""

from __future__ import annotations

import re

import structlog
from litellm import Router

from src.dealdesk.config import Settings, get_settings

logger = structlog.get_logger(__name__)

# ── Prompt Injection Detection ────────────────────────────────────────────────

# Deal names and business summaries are free text written by sellers
_INJECTION_PATTERNS: list[tuple[str, re.Pattern]] = [
    (
        "instruction_override",
        re.compile(
            r"ignore\s+(all\s+)?previous\s+instructions|"
            r"disregard\s+(all\s+)?(your\s+)?instructions|"
            r"override\s+(all\s+)?(your\s+)?instructions",
            re.IGNORECASE,
        ),
    ),
    (
        "score_manipulation",
        re.compile(
            r"(give|assign|rate)\s+(this|the)\s+deal\s+(a\s+)?(score\s+of\s+)?10|"
            r"always\s+recommend\s+approv",
            re.IGNORECASE,
        ),
    ),
    (
        "role_hijacking",
        re.compile(
            r"you\s+are\s+now\s+|"
            r"pretend\s+(to\s+be|you\s+are)|"
            r"from\s+now\s+on\s+you\s+are",
            re.IGNORECASE,
        ),
    ),
]


def detect_prompt_injection(text: str) -> tuple[bool, str | None]:
    """Check text for common prompt injection patterns.

    Returns:
        Tuple of (is_injection, pattern_name).
    """
    for pattern_name, pattern in _INJECTION_PATTERNS:
        if pattern.search(text):
            logger.warning(
                "prompt_injection_detected",
                pattern=pattern_name,
                text_preview=text[:100],
            )
            return True, pattern_name
    return False, None


def sanitize_text(text: str) -> str:
    """Replace injection patterns in user-supplied text with [removed]."""
    is_injection, _ = detect_prompt_injection(text)
    if not is_injection:
        return text
    cleaned = text
    for _, pattern in _INJECTION_PATTERNS:
        cleaned = pattern.sub("[removed]", cleaned)
    return cleaned


def sanitize_messages(messages: list[dict]) -> list[dict]:
    """Sanitize non-system messages. System messages are trusted and never modified."""
    sanitized = []
    for msg in messages:
        if msg.get("role") == "system" or not msg.get("content"):
            sanitized.append(msg)
            continue
        sanitized.append({**msg, "content": sanitize_text(msg["content"])})
    return sanitized


# ── LLM Service ──────────────────────────────────────────────────────────────


class LLMUnavailableError(RuntimeError):
    """Raised when no provider is configured."""


class LLMService:
    """LLM provider abstraction with LiteLLM Router.

    Claude is the primary "reasoning" model with GPT-4o as fallback; whichever
    keys are configured form the model list.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()

        model_list = []
        if settings.ANTHROPIC_API_KEY:
            model_list.append({
                "model_name": "reasoning",
                "litellm_params": {
                    "model": "anthropic/claude-sonnet-4-20250514",
                    "api_key": settings.ANTHROPIC_API_KEY,
                },
            })
        if settings.OPENAI_API_KEY:
            model_list.append({
                "model_name": "reasoning",
                "litellm_params": {
                    "model": "openai/gpt-4o",
                    "api_key": settings.OPENAI_API_KEY,
                },
            })

        if not model_list:
            logger.warning("No LLM API keys configured -- LLM service will be unavailable")
            self.router = None
            return

        self.router = Router(
            model_list=model_list,
            num_retries=settings.LLM_MAX_RETRIES,
            timeout=settings.LLM_TIMEOUT,
            allowed_fails=3,
            cooldown_time=30,
        )

    @property
    def available(self) -> bool:
        return self.router is not None

    async def completion(
        self,
        messages: list[dict],
        model: str = "reasoning",
        max_tokens: int = 2048,
        temperature: float = 0.2,
        json_mode: bool = False,
        metadata: dict | None = None,
    ) -> dict:
        """Execute a completion call through the LiteLLM Router.

        Returns:
            Dict with content, model and usage.

        Raises:
            LLMUnavailableError: If no LLM API keys are configured.
        """
        if not self.router:
            raise LLMUnavailableError("No LLM API keys configured")

        kwargs: dict = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self.router.acompletion(
            model=model,
            messages=sanitize_messages(messages),
            max_tokens=max_tokens,
            temperature=temperature,
            metadata=metadata or {},
            **kwargs,
        )

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return {
            "content": response.choices[0].message.content,
            "model": response.model,
            "usage": usage,
        }
