# backend/advisory_radar/services/enrichment/ai_analyzer.py
from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Awaitable, Callable, Optional

import openai
from pydantic import BaseModel, ValidationError

from advisory_radar.core.errors import AIAnalysisError
from advisory_radar.schemas.ai_analysis import AIAnalysisResult
from advisory_radar.schemas.alerts import Alert
from advisory_radar.services.enrichment.ai_prompts import SYSTEM_PROMPT, build_user_prompt

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

DEFAULT_RETRY_AFTER_SECONDS = 10.0
INVALID_JSON_BACKOFF_SECONDS = 1.0
ERROR_BACKOFF_SECONDS = 2.0

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class AIOutcome(BaseModel):
    """Result-or-error of one alert's AI analysis."""
    status: str  # success | skipped | failed
    result: Optional[AIAnalysisResult] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "success"


def estimate_cost_usd(tokens: int) -> float:
    """Blended estimate: 70% input at $2.50/M, 30% output at $10/M."""
    return (tokens * 0.7 * 2.5 + tokens * 0.3 * 10) / 1_000_000


def decode_ai_response(content: Optional[str], alert: Alert) -> AIAnalysisResult:
    """
    Parse the model body into a typed result.

    Raises AIAnalysisError(invalid_json) when the body is not a JSON object.
    Individual malformed fields fall back to defaults instead of failing.
    """
    text = _FENCE_RE.sub("", (content or "").strip()).strip()
    if not text:
        raise AIAnalysisError(AIAnalysisError.INVALID_JSON, "empty model response")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise AIAnalysisError(AIAnalysisError.INVALID_JSON, f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise AIAnalysisError(AIAnalysisError.INVALID_JSON, "model response is not a JSON object")

    try:
        result = AIAnalysisResult.model_validate(data)
    except ValidationError as e:
        raise AIAnalysisError(AIAnalysisError.INVALID_JSON, f"unusable model response: {e}") from e

    result.summary = result.summary or alert.title
    result.summary_de = result.summary_de or result.summary
    result.title_de = result.title_de or alert.title
    return result


def _retry_after_seconds(err: openai.APIStatusError) -> float:
    try:
        value = err.response.headers.get("retry-after")
        return float(value) if value else DEFAULT_RETRY_AFTER_SECONDS
    except (TypeError, ValueError, AttributeError):
        return DEFAULT_RETRY_AFTER_SECONDS


class AIAnalyzer:
    """
    Azure OpenAI chat client producing summaries, translations, trigger
    keywords and draft compliance tags for one alert at a time.
    """

    def __init__(
        self,
        client: Optional[openai.AsyncAzureOpenAI],
        model: Optional[str],
        *,
        max_retries: int = 2,
        temperature: float = 0.2,
        max_tokens: int = 2000,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self.client = client
        self.model = model
        self.max_retries = max_retries
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._sleep = sleep or asyncio.sleep

    @property
    def configured(self) -> bool:
        return self.client is not None and bool(self.model)

    async def analyze_once(self, alert: Alert) -> AIAnalysisResult:
        """Single call; every failure is raised as a classified AIAnalysisError."""
        if not self.configured:
            raise AIAnalysisError(AIAnalysisError.OTHER, "AI provider not configured")

        try:
            resp = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(alert)},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.RateLimitError as e:
            raise AIAnalysisError(
                AIAnalysisError.RATE_LIMITED, str(e), retry_after=_retry_after_seconds(e)
            ) from e
        except openai.BadRequestError as e:
            if getattr(e, "code", None) == "content_filter":
                raise AIAnalysisError(AIAnalysisError.CONTENT_FILTERED, str(e)) from e
            raise AIAnalysisError(AIAnalysisError.OTHER, str(e)) from e
        except openai.APIError as e:
            raise AIAnalysisError(AIAnalysisError.OTHER, f"{type(e).__name__}: {e}") from e

        choice = resp.choices[0]
        if getattr(choice, "finish_reason", None) == "content_filter":
            raise AIAnalysisError(AIAnalysisError.CONTENT_FILTERED, "response blocked by content filter")

        result = decode_ai_response(choice.message.content, alert)
        usage = getattr(resp, "usage", None)
        if usage is not None:
            result.tokens_used = (usage.prompt_tokens or 0) + (usage.completion_tokens or 0)
        return result

    async def analyze(self, alert: Alert) -> AIOutcome:
        """
        Bounded retry over analyze_once (max_retries + 1 attempts):
          rate limited     -> wait the provider-indicated time, retry
          invalid JSON     -> short fixed backoff, retry
          content filtered -> stop now, skipped
          anything else    -> backoff and retry, failed on the last attempt
        """
        if not self.configured:
            return AIOutcome(status="failed", error="other: AI provider not configured")

        total = self.max_retries + 1
        last_error = "no attempt made"

        for attempt in range(1, total + 1):
            try:
                result = await self.analyze_once(alert)
                return AIOutcome(status="success", result=result, attempts=attempt)
            except AIAnalysisError as e:
                last_error = f"{e.kind}: {e}"
                final = attempt == total

                if e.kind == AIAnalysisError.CONTENT_FILTERED:
                    logger.warning("AI content filter blocked alert %s", alert.id)
                    return AIOutcome(status="skipped", error=last_error, attempts=attempt)

                logger.warning(
                    "AI analysis attempt %d/%d failed for %s: %s", attempt, total, alert.id, last_error
                )
                if final:
                    break

                if e.kind == AIAnalysisError.RATE_LIMITED:
                    await self._sleep(e.retry_after or DEFAULT_RETRY_AFTER_SECONDS)
                elif e.kind == AIAnalysisError.INVALID_JSON:
                    await self._sleep(INVALID_JSON_BACKOFF_SECONDS)
                else:
                    await self._sleep(ERROR_BACKOFF_SECONDS)

        return AIOutcome(status="failed", error=last_error, attempts=total)
