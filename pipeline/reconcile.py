from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
import json
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select

from db.models import Mux, Prompt, Video

from .errors import CallbackValidationError, RecordNotFound
from .status import JobStatus, apply_transition, parse_status

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "Video rendering failed"


@dataclass(frozen=True)
class CallbackPayload:
    status: JobStatus
    job_id: str | None = None
    prompt_id: str | None = None
    video_record_id: str | None = None
    mux_record_id: str | None = None
    video_url: str | None = None
    final_video_url: str | None = None
    error_message: str | None = None


@dataclass
class ReconcileOutcome:
    changed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _coerce_message(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    return json.dumps(value, default=str)


def parse_callback(data: Any) -> CallbackPayload:
    """Validate a worker callback body before any record is touched."""
    if not isinstance(data, dict):
        raise CallbackValidationError("invalid_payload", "Callback body must be a JSON object")
    status = parse_status(data.get("status"))
    if status is None:
        raise CallbackValidationError("invalid_status", "Invalid or missing status")

    video_ref = _text(data.get("videoRecordId"))
    mux_ref = _text(data.get("muxRecordId"))
    if video_ref is None and mux_ref is None:
        raise CallbackValidationError(
            "no_record_refs", "No matching record references in payload"
        )

    video_url = _text(data.get("videoUrl"))
    final_video_url = _text(data.get("finalVideoUrl"))
    if status is JobStatus.COMPLETED:
        if video_ref is not None and video_url is None:
            raise CallbackValidationError("video_url_required", "COMPLETED callback without videoUrl")
        if mux_ref is not None and final_video_url is None:
            raise CallbackValidationError(
                "final_video_url_required", "COMPLETED callback without finalVideoUrl"
            )

    error_message = None
    if status is JobStatus.FAILED:
        error_message = (
            _coerce_message(data.get("error"))
            or _coerce_message(data.get("message"))
            or DEFAULT_FAILURE_MESSAGE
        )

    return CallbackPayload(
        status=status,
        job_id=_text(data.get("jobId")),
        prompt_id=_text(data.get("promptId")),
        video_record_id=video_ref,
        mux_record_id=mux_ref,
        video_url=video_url,
        final_video_url=final_video_url,
        error_message=error_message,
    )


def _lock_record(session, model, record_id: str):
    try:
        key = UUID(record_id)
    except ValueError as exc:
        raise RecordNotFound(f"{model.__tablename__} {record_id}") from exc
    stmt = select(model).where(model.id == key).with_for_update()
    record = session.execute(stmt).scalar_one_or_none()
    if record is None:
        raise RecordNotFound(f"{model.__tablename__} {record_id}")
    return record


def _apply(record, url_attr: str, payload: CallbackPayload, url: str | None) -> None:
    record.status = payload.status.value
    if payload.status is JobStatus.COMPLETED:
        setattr(record, url_attr, url)
        record.error_message = None
    elif payload.status is JobStatus.FAILED:
        setattr(record, url_attr, None)
        record.error_message = payload.error_message


def reconcile_callback(session, payload: CallbackPayload) -> ReconcileOutcome:
    """Apply one worker callback to its Video/Mux records in a single transaction.

    Terminal records are left untouched so replays are no-op successes. A missing
    record or an illegal regression rolls back everything.
    """
    outcome = ReconcileOutcome()
    try:
        targets = []
        if payload.video_record_id is not None:
            video = _lock_record(session, Video, payload.video_record_id)
            targets.append(("video", video, "video_url", payload.video_url))
        if payload.mux_record_id is not None:
            mux = _lock_record(session, Mux, payload.mux_record_id)
            targets.append(("mux", mux, "final_video_url", payload.final_video_url))
        prompt = None
        if payload.prompt_id is not None:
            stmt = select(Prompt).where(Prompt.prompt_id == payload.prompt_id).with_for_update()
            prompt = session.execute(stmt).scalar_one_or_none()
            if prompt is None:
                raise RecordNotFound(f"prompt {payload.prompt_id}")

        for kind, record, url_attr, url in targets:
            if payload.job_id is not None and record.job_id not in (None, payload.job_id):
                logger.warning(
                    "%s %s has job id %s but callback carries %s",
                    kind,
                    record.id,
                    record.job_id,
                    payload.job_id,
                )
            if not apply_transition(record.status, payload.status):
                outcome.unchanged.append(kind)
                continue
            if payload.job_id is not None and record.job_id is None:
                record.job_id = payload.job_id
            _apply(record, url_attr, payload, url)
            outcome.changed.append(kind)

        if outcome.changed and prompt is not None:
            prompt.updated_at = datetime.now(UTC)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(
        "callback %s job=%s changed=%s unchanged=%s",
        payload.status.value,
        payload.job_id,
        outcome.changed,
        outcome.unchanged,
    )
    return outcome
