from __future__ import annotations

import hmac
import json
import logging
from os import getenv

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import desc, or_, select
from starlette.concurrency import run_in_threadpool

from db.models import UNKNOWN_SUBJECT, Prompt
from db.session import SessionLocal
from generation.config import RENDER_QUALITIES, load_callback_secret
from generation.intake import (
    claim_legacy_prompts,
    create_prompt_for_user,
    require_prompt_by_public_id,
)
from generation.lookup import latest_audio, latest_mux, latest_script, latest_video
from llm import get_mediator
from pipeline.errors import (
    CallbackValidationError,
    DispatchError,
    GenerationError,
    InvalidTransition,
    PromptNotFound,
    ProviderError,
    RecordNotFound,
)
from pipeline.factory import build_services
from pipeline.reconcile import ReconcileOutcome, parse_callback, reconcile_callback

logging.basicConfig(
    level=getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="LessonReel API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_PREREQUISITE_CODES = {"script_not_found", "audio_not_found", "video_not_found", "narration_missing"}


def _subject(x_subject_id: str | None = Header(default=None)) -> str | None:
    value = (x_subject_id or "").strip()
    return value or None


def _require_subject(subject_id: str | None = Depends(_subject)) -> str:
    if subject_id is None:
        raise HTTPException(status_code=401, detail="subject_required")
    return subject_id


def _require_operator(x_operator_token: str | None = Header(default=None)) -> None:
    expected = getenv("OPERATOR_TOKEN", "")
    if not expected:
        raise HTTPException(status_code=503, detail="operator_token_missing")
    if x_operator_token != expected:
        raise HTTPException(status_code=401, detail="operator_token_required")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _check_quality(quality: str | None) -> str | None:
    quality = _clean(quality)
    if quality is not None and quality.lower() not in RENDER_QUALITIES:
        raise HTTPException(status_code=400, detail="invalid_quality")
    return quality.lower() if quality else None


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, PromptNotFound):
        return HTTPException(status_code=404, detail="prompt_not_found")
    if isinstance(exc, GenerationError):
        status = 409 if exc.code in _PREREQUISITE_CODES else 502
        return HTTPException(status_code=status, detail=exc.code)
    if isinstance(exc, DispatchError):
        return HTTPException(status_code=502, detail="render_dispatch_failed")
    if isinstance(exc, ProviderError):
        return HTTPException(status_code=502, detail=exc.code)
    raise TypeError(f"Unmapped pipeline error: {exc!r}")


_PIPELINE_ERRORS = (PromptNotFound, GenerationError, DispatchError, ProviderError)


class GenerateRequest(BaseModel):
    prompt: str | None = None
    language: str | None = None
    quality: str | None = None


class PromptCreateRequest(BaseModel):
    prompt: str | None = None
    language: str | None = None


class AudioStepRequest(BaseModel):
    narration: str | None = None


class VideoStepRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    manim_script: str | None = Field(default=None, alias="manimScript")
    quality: str | None = None
    audio_url: str | None = Field(default=None, alias="audioUrl")


class MuxStepRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    audio_url: str | None = Field(default=None, alias="audioUrl")
    video_url: str | None = Field(default=None, alias="videoUrl")
    output_name: str | None = Field(default=None, alias="outputName")
    bucket_name: str | None = Field(default=None, alias="bucketName")


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/llm/metrics")
def llm_metrics(_guard: None = Depends(_require_operator)) -> dict:
    return get_mediator().get_metrics_snapshot()


@app.post("/generate", status_code=202)
def generate(req: GenerateRequest, subject_id: str | None = Depends(_subject)) -> dict:
    prompt_text = _clean(req.prompt)
    if prompt_text is None:
        raise HTTPException(status_code=400, detail="prompt_required")
    quality = _check_quality(req.quality)
    services = build_services()
    session = SessionLocal()
    try:
        result = services.workflow.run(
            session,
            prompt_text=prompt_text,
            language=req.language,
            subject_id=subject_id,
            quality=quality,
        )
        return jsonable_encoder(result.as_payload())
    except _PIPELINE_ERRORS as exc:
        logger.warning("generation failed: %s", exc)
        raise _http_error(exc) from exc
    finally:
        session.close()


@app.post("/prompts", status_code=201)
def create_prompt(req: PromptCreateRequest, subject_id: str | None = Depends(_subject)) -> dict:
    prompt_text = _clean(req.prompt)
    if prompt_text is None:
        raise HTTPException(status_code=400, detail="prompt_required")
    session = SessionLocal()
    try:
        creation = create_prompt_for_user(session, prompt_text, req.language, subject_id)
        return {
            "success": True,
            "promptId": creation.prompt.prompt_id,
            "promptRecordId": str(creation.prompt.id),
            "prompt": creation.prompt.prompt,
            "language": creation.prompt.language,
            "userId": str(creation.user.id),
        }
    finally:
        session.close()


@app.post("/prompts/claim-legacy")
def claim_legacy(subject_id: str = Depends(_require_subject)) -> dict:
    session = SessionLocal()
    try:
        migrated = claim_legacy_prompts(session, subject_id)
        return {"success": True, "migrated": migrated}
    finally:
        session.close()


@app.post("/prompts/{prompt_id}/script")
def rerun_script(prompt_id: str) -> dict:
    services = build_services()
    session = SessionLocal()
    try:
        prompt = require_prompt_by_public_id(session, prompt_id)
        result = services.scripts.generate_script_for_prompt(session, prompt)
        return {
            "success": True,
            "promptId": prompt.prompt_id,
            "scriptId": result.script.script_id,
            "result": result.as_payload(),
        }
    except _PIPELINE_ERRORS as exc:
        raise _http_error(exc) from exc
    finally:
        session.close()


@app.post("/prompts/{prompt_id}/audio")
def rerun_audio(prompt_id: str, req: AudioStepRequest | None = None) -> dict:
    req = req or AudioStepRequest()
    services = build_services()
    session = SessionLocal()
    try:
        prompt = require_prompt_by_public_id(session, prompt_id)
        result = services.audio.generate_audio_for_prompt(
            session, prompt, narration_override=_clean(req.narration)
        )
        return {
            "success": True,
            "promptId": prompt.prompt_id,
            "audioId": str(result.audio.id),
            "audioUrl": result.audio_url,
            "usedTestAudio": result.used_test_audio,
            "language": result.language,
        }
    except _PIPELINE_ERRORS as exc:
        raise _http_error(exc) from exc
    finally:
        session.close()


@app.post("/prompts/{prompt_id}/video", status_code=202)
def rerun_video(prompt_id: str, req: VideoStepRequest | None = None) -> dict:
    req = req or VideoStepRequest()
    quality = _check_quality(req.quality)
    services = build_services()
    session = SessionLocal()
    try:
        prompt = require_prompt_by_public_id(session, prompt_id)
        script = latest_script(session, prompt)
        if script is None:
            raise GenerationError("script_not_found", f"No script for prompt {prompt_id}")
        audio_url = _clean(req.audio_url)
        if audio_url is None:
            audio = latest_audio(session, prompt)
            if audio is None:
                raise GenerationError("audio_not_found", f"No audio for prompt {prompt_id}")
            audio_url = audio.audio_url
        job = services.dispatcher.enqueue_video_processing_job(
            session,
            prompt=prompt,
            script=script,
            audio_url=audio_url,
            language=prompt.language,
            quality=quality,
            manim_script=_clean(req.manim_script),
        )
        return {
            "success": True,
            "promptId": prompt.prompt_id,
            "videoRecordId": str(job.video.id),
            "muxRecordId": str(job.mux.id),
            "jobId": job.job_id,
            "jobStatus": job.status.value,
        }
    except _PIPELINE_ERRORS as exc:
        raise _http_error(exc) from exc
    finally:
        session.close()


@app.post("/prompts/{prompt_id}/mux")
def rerun_mux(prompt_id: str, req: MuxStepRequest | None = None) -> dict:
    req = req or MuxStepRequest()
    services = build_services()
    session = SessionLocal()
    try:
        prompt = require_prompt_by_public_id(session, prompt_id)
        mux = services.muxer.mux_media_for_prompt(
            session,
            prompt,
            audio_url=_clean(req.audio_url),
            video_url=_clean(req.video_url),
            output_name=_clean(req.output_name),
            bucket_name=_clean(req.bucket_name),
        )
        return {
            "success": True,
            "promptId": prompt.prompt_id,
            "muxRecordId": str(mux.id),
            "finalVideoUrl": mux.final_video_url,
        }
    except _PIPELINE_ERRORS as exc:
        raise _http_error(exc) from exc
    finally:
        session.close()


def _apply_callback(payload) -> ReconcileOutcome:
    session = SessionLocal()
    try:
        return reconcile_callback(session, payload)
    finally:
        session.close()


@app.post("/webhooks/video-generation")
async def video_generation_webhook(
    request: Request,
    x_callback_secret: str | None = Header(default=None),
) -> dict:
    expected = load_callback_secret()
    if expected:
        presented = (x_callback_secret or "").strip()
        if not hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
            logger.warning("webhook rejected: bad callback secret")
            raise HTTPException(status_code=401, detail="unauthorized")

    raw = await request.body()
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=400, detail="invalid_json") from exc
    try:
        payload = parse_callback(data)
    except CallbackValidationError as exc:
        logger.warning("webhook rejected: %s", exc)
        raise HTTPException(status_code=400, detail=exc.code) from exc

    try:
        outcome = await run_in_threadpool(_apply_callback, payload)
    except RecordNotFound as exc:
        logger.warning("webhook references missing record: %s", exc)
        raise HTTPException(status_code=404, detail="record_not_found") from exc
    except InvalidTransition as exc:
        logger.warning("webhook rejected: %s", exc)
        raise HTTPException(status_code=409, detail="invalid_transition") from exc
    return {"success": True, "changed": outcome.changed}


def _owned_by(prompt: Prompt, subject_id: str) -> bool:
    return prompt.subject_id in (None, UNKNOWN_SUBJECT, subject_id)


def _title(prompt: Prompt, script) -> str:
    if script is not None and (script.title or script.explanation):
        return script.title or script.explanation
    text = prompt.prompt
    return text if len(text) <= 50 else f"{text[:50]}..."


def _job_view(record, url_attr: str) -> dict | None:
    if record is None:
        return None
    return {
        "recordId": str(record.id),
        "status": record.status,
        "jobId": record.job_id,
        "url": getattr(record, url_attr),
        "errorMessage": record.error_message,
    }


@app.get("/videos")
def list_videos(
    subject_id: str = Depends(_require_subject),
    limit: int = Query(default=50, ge=1, le=200),
) -> list[dict]:
    session = SessionLocal()
    try:
        stmt = (
            select(Prompt)
            .where(
                or_(
                    Prompt.subject_id == subject_id,
                    Prompt.subject_id.is_(None),
                    Prompt.subject_id == UNKNOWN_SUBJECT,
                )
            )
            .order_by(desc(Prompt.created_at))
            .limit(limit)
        )
        items = []
        for prompt in session.execute(stmt).scalars().all():
            script = latest_script(session, prompt)
            mux = latest_mux(session, prompt)
            items.append(
                {
                    "id": prompt.prompt_id,
                    "title": _title(prompt, script),
                    "prompt": prompt.prompt,
                    "language": prompt.language,
                    "createdAt": prompt.created_at,
                    "status": mux.status if mux is not None else None,
                    "videoUrl": mux.final_video_url if mux is not None else None,
                }
            )
        return jsonable_encoder(items)
    finally:
        session.close()


@app.get("/videos/{prompt_id}")
def get_video(prompt_id: str, subject_id: str = Depends(_require_subject)) -> dict:
    session = SessionLocal()
    try:
        try:
            prompt = require_prompt_by_public_id(session, prompt_id)
        except PromptNotFound as exc:
            raise HTTPException(status_code=404, detail="prompt_not_found") from exc
        if not _owned_by(prompt, subject_id):
            raise HTTPException(status_code=403, detail="forbidden")
        script = latest_script(session, prompt)
        audio = latest_audio(session, prompt)
        mux = latest_mux(session, prompt)
        return jsonable_encoder(
            {
                "id": prompt.prompt_id,
                "title": _title(prompt, script),
                "prompt": prompt.prompt,
                "language": prompt.language,
                "createdAt": prompt.created_at,
                "explanation": script.explanation if script is not None else None,
                "narration": script.narration if script is not None else None,
                "audioUrl": audio.audio_url if audio is not None else None,
                "usedTestAudio": audio.used_test_audio if audio is not None else None,
                "video": _job_view(latest_video(session, prompt), "video_url"),
                "mux": _job_view(mux, "final_video_url"),
                "videoUrl": mux.final_video_url if mux is not None else None,
            }
        )
    finally:
        session.close()
