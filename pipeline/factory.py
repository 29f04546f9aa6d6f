from __future__ import annotations

from dataclasses import dataclass

from generation.audio import AudioSynthesizer, PlaceholderAudioSource, SynthesizedAudioSource
from generation.config import GenerationConfig, load_generation_config
from generation.script import ScriptSynthesizer
from generation.translate import Translator
from llm import get_mediator
from media.storage import SupabaseStorage, load_storage_config
from media.tts import ElevenLabsClient, load_tts_config

from .dispatch import RenderJobDispatcher, RenderWorkerClient
from .mux import MuxRequester
from .retry import RetryPolicy
from .workflow import GenerationWorkflow


@dataclass(frozen=True)
class GenerationServices:
    config: GenerationConfig
    scripts: ScriptSynthesizer
    translator: Translator
    audio: AudioSynthesizer
    dispatcher: RenderJobDispatcher
    muxer: MuxRequester
    workflow: GenerationWorkflow


def build_services(
    config: GenerationConfig | None = None,
    *,
    llm=None,
    retry: RetryPolicy | None = None,
    tts=None,
    storage=None,
    worker: RenderWorkerClient | None = None,
) -> GenerationServices:
    config = config or load_generation_config()
    llm = llm or get_mediator()
    retry = retry or RetryPolicy()
    scripts = ScriptSynthesizer(llm, retry)
    translator = Translator(llm, retry)

    synthesized = None
    if config.tts_enabled:
        synthesized = SynthesizedAudioSource(
            tts or ElevenLabsClient(load_tts_config()),
            storage or SupabaseStorage(load_storage_config()),
            config.audio_bucket,
            retry,
        )
    audio = AudioSynthesizer(
        translator,
        PlaceholderAudioSource(config.test_audio_url),
        synthesized,
        tts_enabled=config.tts_enabled,
    )

    worker = worker or RenderWorkerClient(config.backend_url, config.request_timeout_s)
    dispatcher = RenderJobDispatcher(worker, config)
    return GenerationServices(
        config=config,
        scripts=scripts,
        translator=translator,
        audio=audio,
        dispatcher=dispatcher,
        muxer=MuxRequester(worker, config),
        workflow=GenerationWorkflow(scripts, audio, dispatcher),
    )
