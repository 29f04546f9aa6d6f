from __future__ import annotations

from dataclasses import dataclass
import json
import os
from urllib.parse import quote

from pipeline.http import post

PROVIDER = "elevenlabs"


@dataclass(frozen=True)
class TTSConfig:
    api_key: str
    voice_id: str
    model_id: str
    output_format: str
    base_url: str
    timeout_s: int


def load_tts_config() -> TTSConfig:
    api_key = os.getenv("ELEVENLABS_API_KEY", "").strip()
    if not api_key:
        raise RuntimeError("ELEVENLABS_API_KEY is not set")
    return TTSConfig(
        api_key=api_key,
        voice_id=os.getenv("ELEVENLABS_VOICE_ID", "JBFqnCBsd6RMkjVDRZzb").strip(),
        model_id=os.getenv("ELEVENLABS_MODEL_ID", "eleven_multilingual_v2").strip(),
        output_format=os.getenv("ELEVENLABS_OUTPUT_FORMAT", "pcm_44100").strip(),
        base_url=os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io").rstrip("/"),
        timeout_s=int(os.getenv("ELEVENLABS_TIMEOUT_S", "120")),
    )


class ElevenLabsClient:
    def __init__(self, config: TTSConfig) -> None:
        self._config = config

    def synthesize(self, text: str) -> bytes:
        config = self._config
        url = (
            f"{config.base_url}/v1/text-to-speech/{quote(config.voice_id)}"
            f"?output_format={quote(config.output_format)}"
        )
        body = json.dumps({"text": text, "model_id": config.model_id}).encode("utf-8")
        return post(
            url,
            body=body,
            headers={
                "Content-Type": "application/json",
                "Accept": "audio/*",
                "xi-api-key": config.api_key,
            },
            provider=PROVIDER,
            timeout_s=config.timeout_s,
        )
