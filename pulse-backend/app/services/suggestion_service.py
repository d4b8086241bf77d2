import json
import logging
import re
from dataclasses import dataclass
from typing import Protocol

from app.core.config import settings
from app.core.errors import DependencyUnavailable, ValidationError
from app.core.observability import log_event

logger = logging.getLogger("pulse.ai")

CANNED_MODEL = "local-canned"
MAX_SUGGESTION_CHARS = 100
DEFAULT_SUGGESTION_COUNT = 3
_LIST_PREFIX = re.compile(r"^[-\d.)\s\"]+")


@dataclass(frozen=True)
class SuggestionResult:
    model: str
    suggestions: list[str]


class SuggestionProvider(Protocol):
    model: str

    def complete(self, *, system_prompt: str, user_prompt: str) -> str:
        ...


class CannedSuggestionProvider:
    """Offline provider that answers every prompt with a fixed set of messages."""

    model = CANNED_MODEL

    def __init__(self, suggestions: list[str] | None = None):
        self.suggestions = suggestions or []

    def complete(self, *, system_prompt: str, user_prompt: str) -> str:
        return json.dumps(self.suggestions)


class OpenAISuggestionProvider:
    def __init__(self, *, api_key: str, model: str, base_url: str | None = None):
        try:
            from openai import OpenAI
        except ImportError as exc:
            raise DependencyUnavailable("openai dependency is not installed") from exc

        client_kwargs: dict[str, str] = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = OpenAI(**client_kwargs)
        self.model = model

    def complete(self, *, system_prompt: str, user_prompt: str) -> str:
        completion = self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=256,
            temperature=settings.ai_temperature,
        )
        text = ""
        if completion.choices and completion.choices[0].message:
            text = completion.choices[0].message.content or ""
        return text.strip()


def get_suggestion_provider() -> SuggestionProvider:
    if settings.ai_provider == "openai":
        if not settings.openai_api_key:
            raise DependencyUnavailable("OPENAI_API_KEY is required when AI_PROVIDER=openai")
        return OpenAISuggestionProvider(
            api_key=settings.openai_api_key,
            model=settings.ai_model,
            base_url=settings.openai_base_url,
        )
    return CannedSuggestionProvider()


def canned_suggestions(context: str | None, audience: str | None) -> list[str]:
    return [
        f"Big Sale! Save 20% today for {audience or 'our valued customers'}.",
        f"Exclusive offer for you: {context or 'limited time discount'}. Click to claim!",
        f"Don't miss out: special deals for {audience or 'selected customers'} this week.",
    ]


def _clip(suggestions: list[str], count: int) -> list[str]:
    out = []
    for item in suggestions:
        text = str(item).strip()
        if text:
            out.append(text[:MAX_SUGGESTION_CHARS])
        if len(out) >= count:
            break
    return out


def parse_suggestions(raw: str, count: int) -> list[str]:
    """Read a JSON array out of the model reply, or fall back to one suggestion per line."""
    start = raw.find("[")
    end = raw.rfind("]")
    if start != -1 and end > start:
        try:
            parsed = json.loads(raw[start : end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return _clip([item for item in parsed if isinstance(item, (str, int, float))], count)

    lines = [_LIST_PREFIX.sub("", line).strip() for line in raw.splitlines() if line.strip()]
    return _clip(lines, count)


def _user_prompt(context: str | None, audience: str | None, tone: str | None, count: int) -> str:
    parts = []
    if context:
        parts.append(f"Campaign goal / context: {context}")
    if audience:
        parts.append(f"Audience: {audience}")
    parts.append(f"Tone: {tone or 'friendly, concise'}")
    inputs = "\n".join(parts)
    return (
        f"Produce exactly {count} short marketing messages (each <= {MAX_SUGGESTION_CHARS} characters). "
        "Return a JSON array only, no extra commentary.\n\n"
        f"Inputs:\n{inputs}\n\n"
        'Output format:\n["suggestion 1", "suggestion 2", ...]'
    )


def suggest(
    context: str | None,
    audience: str | None = None,
    tone: str | None = None,
    n: int | None = None,
    *,
    provider: SuggestionProvider | None = None,
) -> SuggestionResult:
    context = (context or "").strip() or None
    audience = (audience or "").strip() or None
    tone = (tone or "").strip() or None
    if not context and not audience:
        raise ValidationError("Provide `context` or `audience` in the body.")
    count = max(1, min(n or DEFAULT_SUGGESTION_COUNT, settings.ai_max_suggestions))

    fallback = _clip(canned_suggestions(context, audience), count)
    try:
        provider = provider or get_suggestion_provider()
        if isinstance(provider, CannedSuggestionProvider) and not provider.suggestions:
            return SuggestionResult(model=CANNED_MODEL, suggestions=fallback)
        raw = provider.complete(
            system_prompt="You are a helpful marketing copy assistant.",
            user_prompt=_user_prompt(context, audience, tone, count),
        )
        suggestions = parse_suggestions(raw, count)
        if not suggestions:
            raise DependencyUnavailable("Provider returned no suggestions")
    except Exception as exc:
        log_event(logger, logging.WARNING, "ai_suggest_fallback", provider=settings.ai_provider, error=str(exc))
        return SuggestionResult(model=CANNED_MODEL, suggestions=fallback)

    return SuggestionResult(model=provider.model, suggestions=suggestions)
