from __future__ import annotations

import json
from typing import Any
from urllib import request as urlrequest
from urllib.error import HTTPError, URLError

from .errors import ProviderError


def sanitize_error_message(message: str) -> str:
    text = (message or "").replace("\n", " ")
    text = text.replace("Bearer ", "Bearer [redacted]")
    return text[:300]


def post(
    url: str,
    *,
    body: bytes,
    headers: dict[str, str],
    provider: str,
    timeout_s: float = 30,
) -> bytes:
    req = urlrequest.Request(url=url, data=body, method="POST", headers=headers)
    try:
        with urlrequest.urlopen(req, timeout=timeout_s) as resp:
            return resp.read()
    except HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise ProviderError(
            code=f"http_{exc.code}",
            message=sanitize_error_message(detail),
            provider=provider,
            status=exc.code,
        ) from exc
    except URLError as exc:
        raise ProviderError(
            code="network_error",
            message=sanitize_error_message(str(exc.reason)),
            provider=provider,
        ) from exc
    except OSError as exc:
        # timeouts and resets raised while reading the response
        raise ProviderError(
            code="network_error",
            message=sanitize_error_message(str(exc) or type(exc).__name__),
            provider=provider,
        ) from exc


def post_json(
    url: str,
    payload: dict[str, Any],
    *,
    provider: str,
    headers: dict[str, str] | None = None,
    timeout_s: float = 30,
) -> dict[str, Any]:
    merged = {"Content-Type": "application/json"}
    merged.update(headers or {})
    raw = post(
        url,
        body=json.dumps(payload).encode("utf-8"),
        headers=merged,
        provider=provider,
        timeout_s=timeout_s,
    )
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProviderError(
            code="invalid_json",
            message=sanitize_error_message(raw.decode("utf-8", errors="replace")),
            provider=provider,
        ) from exc
    return data if isinstance(data, dict) else {"data": data}
