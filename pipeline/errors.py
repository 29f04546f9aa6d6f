from __future__ import annotations

from dataclasses import dataclass

RETRYABLE_STATUSES = frozenset({429, 503})


@dataclass(frozen=True)
class ProviderError(Exception):
    code: str
    message: str
    provider: str
    status: int | None = None

    @property
    def retryable(self) -> bool:
        return self.status in RETRYABLE_STATUSES

    def __str__(self) -> str:
        return f"{self.code}({self.provider}): {self.message}"


class GenerationError(RuntimeError):
    """Fatal failure of a synchronous generation step."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class DispatchError(RuntimeError):
    def __init__(self, detail: str, status: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status = status


class PromptNotFound(LookupError):
    def __init__(self, prompt_id: str) -> None:
        super().__init__(f"Prompt not found: {prompt_id}")
        self.prompt_id = prompt_id


class RecordNotFound(LookupError):
    pass


class CallbackValidationError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class InvalidTransition(ValueError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Illegal status transition {current} -> {target}")
        self.current = current
        self.target = target
