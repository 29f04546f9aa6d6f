from __future__ import annotations

import pytest

import llm.mediator as mediator_module
from llm.mediator import LLMError, LLMMediator
from pipeline.errors import ProviderError


class _FakePost:
    def __init__(self, responses: list) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []

    def __call__(self, url, payload, *, provider, headers=None, timeout_s=30):
        self.calls.append({"url": url, "payload": payload, "provider": provider, "headers": headers})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _completion(content) -> dict:
    return {
        "id": "cmpl-1",
        "choices": [{"message": {"content": content}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5},
    }


def _http_error(status: int) -> ProviderError:
    return ProviderError(code=f"http_{status}", message="nope", provider="gemini", status=status)


@pytest.fixture(autouse=True)
def _gemini_key(monkeypatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.delenv("LLM_PROVIDER", raising=False)


def test_defaults_route_to_gemini_openai_endpoint(monkeypatch) -> None:
    fake = _FakePost([_completion('{"ok": true}')])
    monkeypatch.setattr(mediator_module, "post_json", fake)
    mediator = LLMMediator()

    text = mediator.generate_text(
        task_type="script_generate",
        system_prompt="sys",
        user_prompt="user",
        json_schema={"type": "object"},
    )

    assert text == '{"ok": true}'
    call = fake.calls[0]
    assert call["url"] == "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions"
    assert call["headers"] == {"Authorization": "Bearer test-key"}
    assert call["payload"]["model"] == "gemini-2.0-flash"
    assert call["payload"]["response_format"]["json_schema"]["strict"] is True
    metrics = mediator.get_metrics_snapshot()["routes"]["script_generate|gemini|gemini-2.0-flash"]
    assert metrics["success"] == 1
    assert metrics["prompt_tokens_total"] == 10


def test_schema_rejection_falls_back_to_plain_instructions(monkeypatch) -> None:
    fake = _FakePost([_http_error(400), _completion("{}")])
    monkeypatch.setattr(mediator_module, "post_json", fake)

    LLMMediator().generate_text(
        task_type="script_generate", system_prompt="s", user_prompt="u", json_schema={"type": "object"}
    )

    assert "response_format" not in fake.calls[1]["payload"]
    assert fake.calls[1]["payload"]["messages"][-1]["role"] == "system"


def test_http_failure_carries_status(monkeypatch) -> None:
    monkeypatch.setattr(mediator_module, "post_json", _FakePost([_http_error(429)]))
    mediator = LLMMediator()
    with pytest.raises(LLMError) as excinfo:
        mediator.generate_text(task_type="narration_translate", system_prompt="s", user_prompt="u")
    assert excinfo.value.status == 429
    assert excinfo.value.retryable is True
    assert excinfo.value.task_type == "narration_translate"
    metrics = mediator.get_metrics_snapshot()["routes"]
    assert metrics["narration_translate|gemini|gemini-2.0-flash"]["errors"] == 1


def test_missing_content_returns_empty_text(monkeypatch) -> None:
    monkeypatch.setattr(mediator_module, "post_json", _FakePost([_completion(None)]))
    assert LLMMediator().generate_text(task_type="t", system_prompt="s", user_prompt="u") == ""


def test_malformed_completion_is_an_llm_error(monkeypatch) -> None:
    monkeypatch.setattr(mediator_module, "post_json", _FakePost([{"choices": []}]))
    with pytest.raises(LLMError, match="invalid_response"):
        LLMMediator().generate_text(task_type="t", system_prompt="s", user_prompt="u")


def test_route_overrides_and_missing_key(monkeypatch) -> None:
    monkeypatch.setenv("LLM_ROUTE_SCRIPT_GENERATE_PROVIDER", "openai")
    monkeypatch.setenv("LLM_ROUTE_SCRIPT_GENERATE_MODEL", "gpt-4.1-mini")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        mediator_module._load_route("script_generate")

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    route = mediator_module._load_route("script_generate")
    assert route.provider == "openai"
    assert route.model == "gpt-4.1-mini"
    assert route.base_url == "https://api.openai.com/v1"
