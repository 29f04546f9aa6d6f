from __future__ import annotations

from dataclasses import dataclass
import os

DEFAULT_TEST_AUDIO_URL = (
    "https://geruuvhlyduaoelpwqbj.supabase.co/storage/v1/object/public/audio/"
    "1761579733647-c21w24i.mp3"
)
WEBHOOK_PATH = "/webhooks/video-generation"
RENDER_QUALITIES = ("low", "medium", "high")


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True)
class GenerationConfig:
    tts_enabled: bool = False
    backend_url: str = "http://127.0.0.1:8000"
    app_base_url: str | None = None
    callback_url: str | None = None
    callback_secret: str | None = None
    test_audio_url: str = DEFAULT_TEST_AUDIO_URL
    mux_bucket: str = "muxvideos"
    audio_bucket: str = "audio"
    audio_speed: float = 1.0
    default_quality: str = "low"
    request_timeout_s: int = 30

    def resolved_callback_url(self) -> str | None:
        if self.callback_url:
            return self.callback_url
        if self.app_base_url:
            return f"{self.app_base_url.rstrip('/')}{WEBHOOK_PATH}"
        return None


def load_callback_secret() -> str | None:
    return _optional("VIDEO_WEBHOOK_SECRET")


def load_generation_config() -> GenerationConfig:
    quality = os.getenv("RENDER_QUALITY", "low").strip().lower()
    if quality not in RENDER_QUALITIES:
        raise RuntimeError(f"RENDER_QUALITY must be one of {RENDER_QUALITIES}, got {quality!r}")
    return GenerationConfig(
        tts_enabled=_flag("ENABLE_TTS", "false"),
        backend_url=os.getenv("BACKEND_URL", "http://127.0.0.1:8000").strip().rstrip("/"),
        app_base_url=_optional("APP_BASE_URL"),
        callback_url=_optional("VIDEO_WEBHOOK_URL"),
        callback_secret=load_callback_secret(),
        test_audio_url=os.getenv("TEST_AUDIO_URL", DEFAULT_TEST_AUDIO_URL).strip(),
        mux_bucket=os.getenv("MUX_BUCKET", "muxvideos").strip(),
        audio_bucket=os.getenv("AUDIO_BUCKET", "audio").strip(),
        audio_speed=float(os.getenv("AUDIO_SPEED", "1.0")),
        default_quality=quality,
        request_timeout_s=int(os.getenv("BACKEND_TIMEOUT_S", "30")),
    )
