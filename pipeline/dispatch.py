from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from db.models import Mux, Prompt, Script, Video
from generation.config import RENDER_QUALITIES, GenerationConfig

from .errors import DispatchError, ProviderError
from .http import post_json
from .status import JobStatus, apply_transition

logger = logging.getLogger(__name__)

PROVIDER = "render_worker"
DEFAULT_FAILURE_MESSAGE = "Render job submission failed"


class RenderWorkerClient:
    def __init__(self, base_url: str, timeout_s: float = 30) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s

    def submit_render_job(self, payload: dict[str, Any]) -> dict[str, Any]:
        return post_json(
            f"{self._base_url}/render-and-upload-async",
            payload,
            provider=PROVIDER,
            timeout_s=self._timeout_s,
        )

    def mux_audio_video(self, payload: dict[str, Any]) -> dict[str, Any]:
        return post_json(
            f"{self._base_url}/mux-audio-video",
            payload,
            provider=PROVIDER,
            timeout_s=max(self._timeout_s, 300),
        )


@dataclass(frozen=True)
class RenderJob:
    job_id: str
    status: JobStatus
    video: Video
    mux: Mux
    local_job_id: bool = False


def error_detail(exc: ProviderError) -> str:
    """Prefer the worker's ``detail`` field, fall back to the raw body."""
    message = (exc.message or "").strip()
    try:
        data = json.loads(message)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict) and data.get("detail"):
        detail = data["detail"]
        return detail if isinstance(detail, str) else json.dumps(detail)
    return message or str(exc) or DEFAULT_FAILURE_MESSAGE


def extract_job_id(response: dict[str, Any]) -> str | None:
    for key in ("job_id", "jobId"):
        value = response.get(key)
        if isinstance(value, (str, int)) and str(value).strip():
            return str(value).strip()
    return None


def resolve_quality(quality: str | None, default: str) -> str:
    value = (quality or "").strip().lower() or default
    if value not in RENDER_QUALITIES:
        raise ValueError(f"quality must be one of {RENDER_QUALITIES}")
    return value


class RenderJobDispatcher:
    def __init__(self, worker: RenderWorkerClient, config: GenerationConfig) -> None:
        self._worker = worker
        self._config = config

    def build_payload(
        self,
        *,
        prompt: Prompt,
        script: Script,
        video: Video,
        mux: Mux,
        audio_url: str,
        language: str,
        quality: str,
        script_code: str,
    ) -> dict[str, Any]:
        return {
            "script_code": script_code,
            "scene_name": "auto",
            "quality": quality,
            "prompt_id": prompt.prompt_id,
            "script_id": script.script_id,
            "video_record_id": str(video.id),
            "mux_record_id": str(mux.id),
            "audio_url": audio_url,
            "output_name": mux.output_name,
            "bucket_name": mux.bucket_name,
            "audio_speed": self._config.audio_speed,
            "language": language,
            "callback_url": self._config.resolved_callback_url(),
            "callback_secret": self._config.callback_secret,
        }

    def enqueue_video_processing_job(
        self,
        session,
        *,
        prompt: Prompt,
        script: Script,
        audio_url: str,
        language: str,
        quality: str | None = None,
        manim_script: str | None = None,
    ) -> RenderJob:
        quality = resolve_quality(quality, self._config.default_quality)
        video = Video(id=uuid4(), prompt_id=prompt.id, status=JobStatus.QUEUED.value, quality=quality)
        mux = Mux(
            id=uuid4(),
            prompt_id=prompt.id,
            video_id=video.id,
            status=JobStatus.QUEUED.value,
            output_name=f"final_{script.script_id}",
            bucket_name=self._config.mux_bucket,
        )
        session.add_all([video, mux])
        session.commit()

        payload = self.build_payload(
            prompt=prompt,
            script=script,
            video=video,
            mux=mux,
            audio_url=audio_url,
            language=language,
            quality=quality,
            script_code=(manim_script or "").strip() or script.script,
        )
        logger.info(
            "submitting render job prompt=%s video=%s mux=%s quality=%s",
            prompt.prompt_id,
            video.id,
            mux.id,
            quality,
        )
        try:
            response = self._worker.submit_render_job(payload)
        except ProviderError as exc:
            detail = error_detail(exc)
            logger.error("render job submission failed for prompt %s: %s", prompt.prompt_id, detail)
            if exc.status is None:
                self._mark_failed_best_effort(session, video, mux, detail)
            else:
                self._mark_failed(session, video, mux, detail)
            raise DispatchError(detail, status=exc.status) from exc

        job_id = extract_job_id(response)
        local = job_id is None
        if job_id is None:
            job_id = f"local-{uuid4().hex}"
            logger.warning(
                "render worker returned no job id for video %s; using %s", video.id, job_id
            )
        self._mark_processing(session, video, mux, job_id)
        return RenderJob(
            job_id=job_id,
            status=JobStatus(video.status),
            video=video,
            mux=mux,
            local_job_id=local,
        )

    def _mark_processing(self, session, video: Video, mux: Mux, job_id: str) -> None:
        # a fast worker may already have called back; only move records still QUEUED
        for record in (video, mux):
            session.refresh(record, with_for_update=True)
            if record.job_id is None:
                record.job_id = job_id
            if apply_transition(record.status, JobStatus.PROCESSING):
                record.status = JobStatus.PROCESSING.value
        session.commit()

    def _mark_failed(self, session, video: Video, mux: Mux, detail: str) -> None:
        session.rollback()
        for record in (video, mux):
            session.refresh(record, with_for_update=True)
            if apply_transition(record.status, JobStatus.FAILED):
                record.status = JobStatus.FAILED.value
                record.error_message = detail
        session.commit()

    def _mark_failed_best_effort(self, session, video: Video, mux: Mux, detail: str) -> None:
        try:
            self._mark_failed(session, video, mux, detail)
        except SQLAlchemyError:
            logger.exception("could not record dispatch failure for video %s", video.id)
            session.rollback()
