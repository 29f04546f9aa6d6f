from __future__ import annotations

from dataclasses import dataclass
import os
import time
from typing import Any

from pipeline.errors import ProviderError
from pipeline.http import post_json


@dataclass(frozen=True)
class TaskRoute:
    provider: str
    model: str
    base_url: str
    api_key: str
    api_key_header: str
    timeout_s: int
    max_tokens: int


@dataclass(frozen=True)
class LLMError(ProviderError):
    task_type: str = ""

    def __str__(self) -> str:
        return f"{self.code}({self.provider}/{self.task_type}): {self.message}"


def _provider_defaults(provider: str) -> tuple[str, str]:
    provider = provider.lower().strip()
    if provider == "gemini":
        return "https://generativelanguage.googleapis.com/v1beta/openai", "GEMINI_API_KEY"
    if provider == "openrouter":
        return "https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"
    if provider == "groq":
        return "https://api.groq.com/openai/v1", "GROQ_API_KEY"
    return "https://api.openai.com/v1", "OPENAI_API_KEY"


def _default_model(provider: str) -> str:
    if provider == "gemini":
        return "gemini-2.0-flash"
    return os.getenv("OPENAI_MODEL", "gpt-4o-mini")


def _load_route(task_type: str) -> TaskRoute:
    key = task_type.upper()
    provider = os.getenv(f"LLM_ROUTE_{key}_PROVIDER", os.getenv("LLM_PROVIDER", "gemini"))
    provider = provider.strip().lower()
    default_base, default_key_env = _provider_defaults(provider)
    base_url = os.getenv(f"LLM_ROUTE_{key}_BASE_URL", default_base).strip().rstrip("/")
    model = os.getenv(f"LLM_ROUTE_{key}_MODEL", _default_model(provider)).strip()
    key_env = os.getenv(f"LLM_ROUTE_{key}_API_KEY_ENV", default_key_env).strip()
    api_key = os.getenv(key_env, "").strip()
    if not api_key:
        raise RuntimeError(f"Missing API key for task '{task_type}' (env: {key_env})")
    api_key_header = os.getenv(f"LLM_ROUTE_{key}_API_KEY_HEADER", "Authorization").strip()
    timeout_s = int(os.getenv(f"LLM_ROUTE_{key}_TIMEOUT_S", "90"))
    max_tokens = int(os.getenv(f"LLM_ROUTE_{key}_MAX_TOKENS", "16000"))
    return TaskRoute(
        provider=provider,
        model=model,
        base_url=base_url,
        api_key=api_key,
        api_key_header=api_key_header,
        timeout_s=timeout_s,
        max_tokens=max_tokens,
    )


class LLMMediator:
    """Single-shot chat-completion calls routed per task type.

    Retries are the caller's business; wrap ``generate_text`` in a
    ``RetryPolicy`` so rate limits surface as ``LLMError.status``.
    """

    def __init__(self) -> None:
        self._metrics: dict[str, dict[str, float]] = {}

    def get_metrics_snapshot(self) -> dict[str, Any]:
        return {"routes": self._metrics}

    def generate_text(
        self,
        *,
        task_type: str,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, Any] | None = None,
        max_tokens: int = 8000,
        temperature: float = 0.7,
    ) -> str:
        """Return the raw text of the first choice; empty string if the model said nothing."""
        route = _load_route(task_type)
        payload = self._build_chat_payload(
            route=route,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            json_schema=json_schema,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        start = time.perf_counter()
        try:
            response = self._call_chat_completion(task_type, route, payload)
            content = response["choices"][0]["message"].get("content")
        except LLMError:
            self._track_metrics(task_type=task_type, route=route, success=False)
            raise
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            self._track_metrics(task_type=task_type, route=route, success=False)
            raise LLMError(
                code="invalid_response",
                message=f"Unexpected chat completion shape: {exc}",
                provider=route.provider,
                task_type=task_type,
            ) from exc
        usage = response.get("usage") or {}
        self._track_metrics(
            task_type=task_type,
            route=route,
            success=True,
            latency_ms=(time.perf_counter() - start) * 1000.0,
            prompt_tokens=float(usage.get("prompt_tokens", 0) or 0),
            completion_tokens=float(usage.get("completion_tokens", 0) or 0),
        )
        return content if isinstance(content, str) else ""

    def _build_chat_payload(
        self,
        *,
        route: TaskRoute,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, Any] | None,
        max_tokens: int,
        temperature: float,
    ) -> dict[str, Any]:
        safe_max_tokens = max(1, min(max_tokens, route.max_tokens))
        payload: dict[str, Any] = {
            "model": route.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": safe_max_tokens,
        }
        if json_schema is not None:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": "structured_output",
                    "schema": json_schema,
                    "strict": True,
                },
            }
        return payload

    def _call_chat_completion(
        self,
        task_type: str,
        route: TaskRoute,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        headers: dict[str, str] = {}
        if route.api_key_header.lower() == "authorization":
            headers["Authorization"] = f"Bearer {route.api_key}"
        else:
            headers[route.api_key_header] = route.api_key
        try:
            return post_json(
                f"{route.base_url}/chat/completions",
                payload,
                provider=route.provider,
                headers=headers,
                timeout_s=max(5, route.timeout_s),
            )
        except ProviderError as exc:
            if exc.status in {400, 422} and "response_format" in payload:
                fallback = dict(payload)
                fallback.pop("response_format", None)
                fallback["messages"] = fallback["messages"] + [
                    {
                        "role": "system",
                        "content": "Return ONLY valid JSON matching the requested schema.",
                    }
                ]
                return self._call_chat_completion(task_type, route, fallback)
            raise LLMError(
                code=exc.code,
                message=exc.message,
                provider=route.provider,
                status=exc.status,
                task_type=task_type,
            ) from exc

    def _track_metrics(
        self,
        *,
        task_type: str,
        route: TaskRoute,
        success: bool,
        latency_ms: float = 0.0,
        prompt_tokens: float = 0.0,
        completion_tokens: float = 0.0,
    ) -> None:
        key = f"{task_type}|{route.provider}|{route.model}"
        bucket = self._metrics.setdefault(
            key,
            {
                "calls": 0.0,
                "success": 0.0,
                "errors": 0.0,
                "latency_ms_total": 0.0,
                "prompt_tokens_total": 0.0,
                "completion_tokens_total": 0.0,
            },
        )
        bucket["calls"] += 1
        if success:
            bucket["success"] += 1
            bucket["latency_ms_total"] += max(0.0, latency_ms)
            bucket["prompt_tokens_total"] += max(0.0, prompt_tokens)
            bucket["completion_tokens_total"] += max(0.0, completion_tokens)
        else:
            bucket["errors"] += 1


_MEDIATOR = LLMMediator()


def get_mediator() -> LLMMediator:
    return _MEDIATOR
