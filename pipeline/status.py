from __future__ import annotations

from enum import Enum

from .errors import InvalidTransition


class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

_ALLOWED: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
}


def parse_status(value: object) -> JobStatus | None:
    if not isinstance(value, str):
        return None
    try:
        return JobStatus(value.strip().upper())
    except ValueError:
        return None


def apply_transition(current: JobStatus | str, target: JobStatus | str) -> bool:
    """Return True when ``current -> target`` changes state.

    Terminal records absorb every later status as a no-op, so replayed
    callbacks are harmless. Regressions such as PROCESSING -> QUEUED raise.
    """
    current = JobStatus(current)
    target = JobStatus(target)
    if current.is_terminal or current is target:
        return False
    if target in _ALLOWED[current]:
        return True
    raise InvalidTransition(current.value, target.value)
