# services/openai_service.py
from __future__ import annotations

import json
import re
import time
from typing import Any, Dict, Optional, Tuple, Type

from openai import AsyncOpenAI  # pip install openai>=1
from pydantic import BaseModel, ValidationError

from app.config import settings, require_openai
from app.core.logging import get_logger

logger = get_logger()

_JSON_HINT = (
    "Respond with exactly one valid JSON object, without explanation, "
    "without extra text, no markdown, no code fences."
)


class AIResponseError(ValueError):
    """The model replied, but the reply is not a usable JSON object for the schema."""

    def __init__(self, message: str, raw_text: Optional[str] = None):
        super().__init__(message)
        self.raw_text = raw_text


def _pydantic_schema_dict(model: Type[BaseModel]) -> Dict[str, Any]:
    return model.model_json_schema()  # pydantic v2


def _extract_first_json(text: str) -> str:
    """
    Lenient parser: take the first {...} block and drop trailing commas.
    """
    m = re.search(r"\{.*\}", text, flags=re.DOTALL)
    candidate = m.group(0) if m else text.strip()
    candidate = re.sub(r",\s*([}\]])", r"\1", candidate)
    return candidate.strip()


def _usage_dict(usage: Any) -> Optional[Dict[str, Any]]:
    if usage is None:
        return None
    dump = getattr(usage, "model_dump", None)
    if callable(dump):
        return dump()
    if isinstance(usage, dict):
        return usage
    return {"raw": str(usage)}


class OpenAIService:
    """
    Chat-completion client for the synthesis steps.

    One request per call, no retries: a failed call is reported to the caller,
    which decides whether to skip the work unit or surface the error.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model or settings.OPENAI_MODEL
        self.timeout_s = timeout_s if timeout_s is not None else settings.OPENAI_TIMEOUT_S
        if client is None:
            api_key = require_openai()
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=settings.OPENAI_BASE_URL or None,
                max_retries=0,
            )
        self.client = client

    def _build_messages(self, system_prompt: str, user_prompt: str, schema: Dict[str, Any]) -> list[dict]:
        schema_hint = json.dumps(schema, ensure_ascii=False)
        system = (
            f"{system_prompt}\n\n{_JSON_HINT}\n"
            f"The JSON must match this JSON Schema exactly:\n{schema_hint}"
        )
        user = f"{user_prompt}\n\nAgain: {_JSON_HINT}"
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    async def _complete(self, messages: list[dict], *, json_mode: bool) -> Tuple[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": 0.2,
            "timeout": self.timeout_s,
        }
        if json_mode and settings.OPENAI_JSON_MODE:
            kwargs["response_format"] = {"type": "json_object"}
        completion = await self.client.chat.completions.create(**kwargs)
        choices = getattr(completion, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        if message is None:
            # Gateways return 200 without choices after content filtering.
            raise AIResponseError("empty model response")
        raw_text = message.content or ""
        return raw_text, getattr(completion, "usage", None)

    async def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: Type[BaseModel],
        action_type: str = "generic",
    ) -> Tuple[BaseModel, Dict[str, Any]]:
        """
        Returns: (parsed_model_instance, meta_dict)

        Raises openai.OpenAIError for transport/API failures and
        AIResponseError when the reply cannot be parsed or validated.
        """
        schema = _pydantic_schema_dict(response_model)
        messages = self._build_messages(system_prompt, user_prompt, schema)

        t0 = time.perf_counter()
        raw_text, usage = await self._complete(messages, json_mode=True)
        duration_ms = int((time.perf_counter() - t0) * 1000)

        if not raw_text.strip():
            raise AIResponseError("empty model response", raw_text=raw_text)

        candidate = _extract_first_json(raw_text)
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as exc:
            raise AIResponseError(f"invalid JSON: {exc}", raw_text=raw_text) from exc
        if not isinstance(data, dict):
            raise AIResponseError("model response is not a JSON object", raw_text=raw_text)

        try:
            parsed = response_model.model_validate(data)
        except ValidationError as exc:
            raise AIResponseError(f"schema validation failed: {exc}", raw_text=raw_text) from exc

        logger.info(
            "ai_completion_ok",
            action_type=action_type,
            model=self.model,
            duration_ms=duration_ms,
        )
        return parsed, {
            "ok": True,
            "model": self.model,
            "raw_text": raw_text,
            "usage": _usage_dict(usage),
            "duration_ms": duration_ms,
        }

    async def generate_text(
        self,
        system_prompt: str,
        user_prompt: str,
        action_type: str = "generic",
    ) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        t0 = time.perf_counter()
        raw_text, _ = await self._complete(messages, json_mode=False)
        logger.info(
            "ai_completion_ok",
            action_type=action_type,
            model=self.model,
            duration_ms=int((time.perf_counter() - t0) * 1000),
        )
        return raw_text.strip()
