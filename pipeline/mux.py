from __future__ import annotations

import logging

from db.models import Mux, Prompt
from generation.config import GenerationConfig
from generation.lookup import latest_audio, latest_completed_video

from .dispatch import RenderWorkerClient, error_detail
from .errors import DispatchError, GenerationError, ProviderError
from .status import JobStatus

logger = logging.getLogger(__name__)


class MuxRequester:
    """Synchronous re-mux of an already rendered video with a narration track."""

    def __init__(self, worker: RenderWorkerClient, config: GenerationConfig) -> None:
        self._worker = worker
        self._config = config

    def mux_media_for_prompt(
        self,
        session,
        prompt: Prompt,
        *,
        audio_url: str | None = None,
        video_url: str | None = None,
        output_name: str | None = None,
        bucket_name: str | None = None,
    ) -> Mux:
        source_video = None
        if not video_url:
            source_video = latest_completed_video(session, prompt)
            video_url = source_video.video_url if source_video is not None else None
        if not video_url:
            raise GenerationError("video_not_found", f"No rendered video for prompt {prompt.prompt_id}")
        if not audio_url:
            audio = latest_audio(session, prompt)
            audio_url = audio.audio_url if audio is not None else None
        if not audio_url:
            raise GenerationError("audio_not_found", f"No audio for prompt {prompt.prompt_id}")

        output_name = output_name or f"final_{prompt.prompt_id}"
        bucket_name = bucket_name or self._config.mux_bucket
        try:
            response = self._worker.mux_audio_video(
                {
                    "video_url": video_url,
                    "audio_url": audio_url,
                    "output_name": output_name,
                    "bucket_name": bucket_name,
                }
            )
        except ProviderError as exc:
            detail = error_detail(exc)
            logger.error("mux request failed for prompt %s: %s", prompt.prompt_id, detail)
            raise DispatchError(detail, status=exc.status) from exc

        final_url = response.get("combined_url") or response.get("video_url")
        if not isinstance(final_url, str) or not final_url.strip():
            raise DispatchError("Mux worker response did not include a video URL")

        mux = Mux(
            prompt_id=prompt.id,
            video_id=source_video.id if source_video is not None else None,
            status=JobStatus.COMPLETED.value,
            final_video_url=final_url.strip(),
            output_name=output_name,
            bucket_name=bucket_name,
        )
        session.add(mux)
        session.commit()
        return mux
