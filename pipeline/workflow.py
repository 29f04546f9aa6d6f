from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Any

from db.models import Prompt, UserAccount
from generation.audio import AudioResult, AudioSynthesizer
from generation.intake import create_prompt_for_user
from generation.script import ScriptResult, ScriptSynthesizer

from .dispatch import RenderJob, RenderJobDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    prompt: Prompt
    user: UserAccount
    script: ScriptResult
    audio: AudioResult
    job: RenderJob

    def as_payload(self) -> dict[str, Any]:
        return {
            "success": True,
            "promptId": self.prompt.prompt_id,
            "promptRecordId": str(self.prompt.id),
            "scriptId": self.script.script.script_id,
            "audioId": str(self.audio.audio.id),
            "audioUrl": self.audio.audio_url,
            "usedTestAudio": self.audio.used_test_audio,
            "videoRecordId": str(self.job.video.id),
            "muxRecordId": str(self.job.mux.id),
            "jobId": self.job.job_id,
            "jobStatus": self.job.status.value,
            "result": self.script.as_payload(),
        }


class GenerationWorkflow:
    """Prompt intake, script, audio and render dispatch, strictly in sequence.

    Returns once the render job is accepted; the final video arrives later
    through the webhook.
    """

    def __init__(
        self,
        scripts: ScriptSynthesizer,
        audio: AudioSynthesizer,
        dispatcher: RenderJobDispatcher,
    ) -> None:
        self._scripts = scripts
        self._audio = audio
        self._dispatcher = dispatcher

    def run(
        self,
        session,
        *,
        prompt_text: str,
        language: str | None = None,
        subject_id: str | None = None,
        quality: str | None = None,
    ) -> GenerationResult:
        started = time.perf_counter()
        creation = create_prompt_for_user(session, prompt_text, language, subject_id)
        prompt = creation.prompt
        script = self._scripts.generate_script_for_prompt(session, prompt)
        audio = self._audio.generate_audio_for_prompt(session, prompt, script=script.script)
        job = self._dispatcher.enqueue_video_processing_job(
            session,
            prompt=prompt,
            script=script.script,
            audio_url=audio.audio_url,
            language=audio.language,
            quality=quality,
        )
        logger.info(
            "prompt %s queued as job %s in %.1fs",
            prompt.prompt_id,
            job.job_id,
            time.perf_counter() - started,
        )
        return GenerationResult(
            prompt=prompt,
            user=creation.user,
            script=script,
            audio=audio,
            job=job,
        )
