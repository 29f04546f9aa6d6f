from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Protocol

from db.models import Audio, Prompt, Script
from media.container import normalize_audio
from pipeline.errors import GenerationError, ProviderError
from pipeline.retry import RetryPolicy

from .intake import normalize_language
from .lookup import latest_script
from .translate import Translator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioAsset:
    url: str
    used_test_audio: bool


class AudioSource(Protocol):
    name: str

    def produce(self, narration: str, object_stem: str) -> AudioAsset: ...


class PlaceholderAudioSource:
    """Returns a fixed, already-hosted clip without touching the TTS provider."""

    name = "placeholder"

    def __init__(self, url: str) -> None:
        self._url = url

    def produce(self, narration: str, object_stem: str) -> AudioAsset:
        return AudioAsset(url=self._url, used_test_audio=True)


class SynthesizedAudioSource:
    name = "synthesized"

    def __init__(self, tts, storage, bucket: str, retry: RetryPolicy | None = None) -> None:
        self._tts = tts
        self._storage = storage
        self._bucket = bucket
        self._retry = retry or RetryPolicy()

    def produce(self, narration: str, object_stem: str) -> AudioAsset:
        raw = self._retry.run(lambda: self._tts.synthesize(narration), label="tts")
        try:
            blob = normalize_audio(raw)
        except ValueError as exc:
            raise GenerationError("empty_response", "TTS provider returned no audio") from exc
        object_name = f"{object_stem}.{blob.extension}"
        try:
            self._retry.run(
                lambda: self._storage.upload(self._bucket, object_name, blob.data, blob.content_type),
                label="storage_upload",
            )
        except ProviderError as exc:
            raise GenerationError(
                "storage_upload_failed", f"Upload of {object_name} failed: {exc}"
            ) from exc
        return AudioAsset(url=self._storage.public_url(self._bucket, object_name), used_test_audio=False)


@dataclass(frozen=True)
class AudioResult:
    audio: Audio
    audio_url: str
    used_test_audio: bool
    narration: str
    language: str


class AudioSynthesizer:
    def __init__(
        self,
        translator: Translator,
        placeholder: AudioSource,
        synthesized: AudioSource | None = None,
        *,
        tts_enabled: bool = False,
    ) -> None:
        self._translator = translator
        self._placeholder = placeholder
        self._synthesized = synthesized
        self._tts_enabled = tts_enabled

    def select_source(self) -> AudioSource:
        if not self._tts_enabled:
            return self._placeholder
        if self._synthesized is None:
            raise RuntimeError("TTS is enabled but no synthesizing audio source is configured")
        return self._synthesized

    def generate_audio_for_prompt(
        self,
        session,
        prompt: Prompt,
        narration_override: str | None = None,
        script: Script | None = None,
    ) -> AudioResult:
        script = script or latest_script(session, prompt)
        if script is None:
            raise GenerationError("script_not_found", f"No script for prompt {prompt.prompt_id}")
        narration = (narration_override or "").strip() or (script.narration or "").strip()
        if not narration:
            raise GenerationError("narration_missing", f"No narration for prompt {prompt.prompt_id}")

        language = normalize_language(prompt.language)
        narration = self._translator.translate_narration(narration, language)

        source = self.select_source()
        logger.info("audio for prompt %s via %s source", prompt.prompt_id, source.name)
        asset = source.produce(narration, script.script_id)

        audio = Audio(
            prompt_id=prompt.id,
            script_id=script.id,
            audio_url=asset.url,
            used_test_audio=asset.used_test_audio,
            language=language,
        )
        session.add(audio)
        session.commit()
        return AudioResult(
            audio=audio,
            audio_url=asset.url,
            used_test_audio=asset.used_test_audio,
            narration=narration,
            language=language,
        )
