from __future__ import annotations

import pytest

from pipeline.errors import InvalidTransition
from pipeline.status import JobStatus, apply_transition, parse_status


def test_parse_status_normalizes_case_and_whitespace() -> None:
    assert parse_status(" completed ") is JobStatus.COMPLETED
    assert parse_status("FAILED") is JobStatus.FAILED
    assert parse_status("done") is None
    assert parse_status(None) is None
    assert parse_status(3) is None


@pytest.mark.parametrize(
    "current,target",
    [
        ("QUEUED", "PROCESSING"),
        ("QUEUED", "COMPLETED"),
        ("QUEUED", "FAILED"),
        ("PROCESSING", "COMPLETED"),
        ("PROCESSING", "FAILED"),
    ],
)
def test_forward_transitions_apply(current: str, target: str) -> None:
    assert apply_transition(current, target) is True


@pytest.mark.parametrize("current", ["COMPLETED", "FAILED"])
@pytest.mark.parametrize("target", ["QUEUED", "PROCESSING", "COMPLETED", "FAILED"])
def test_terminal_states_absorb_everything(current: str, target: str) -> None:
    assert apply_transition(current, target) is False


def test_same_status_is_a_noop() -> None:
    assert apply_transition(JobStatus.PROCESSING, JobStatus.PROCESSING) is False


def test_regression_is_rejected() -> None:
    with pytest.raises(InvalidTransition, match="PROCESSING -> QUEUED"):
        apply_transition(JobStatus.PROCESSING, JobStatus.QUEUED)
