from __future__ import annotations

from dataclasses import dataclass
import io
import wave

PCM_SAMPLE_RATE = 44100
PCM_CHANNELS = 1
PCM_SAMPLE_WIDTH = 2


@dataclass(frozen=True)
class AudioBlob:
    data: bytes
    extension: str
    content_type: str


def _looks_like_mpeg_frame(data: bytes) -> bool:
    if len(data) < 4 or data[0] != 0xFF or (data[1] & 0xE0) != 0xE0:
        return False
    version = (data[1] >> 3) & 0x03
    layer = (data[1] >> 1) & 0x03
    bitrate = data[2] >> 4
    sample_rate = (data[2] >> 2) & 0x03
    # reserved values never appear in a real frame header
    return version != 0x01 and layer != 0x00 and bitrate not in {0x00, 0x0F} and sample_rate != 0x03


def detect_container(data: bytes) -> tuple[str, str] | None:
    """Return ``(extension, content_type)`` for a recognised container, else None."""
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "wav", "audio/wav"
    if data[:3] == b"ID3":
        return "mp3", "audio/mpeg"
    if _looks_like_mpeg_frame(data):
        return "mp3", "audio/mpeg"
    if data[:4] == b"OggS":
        return "ogg", "audio/ogg"
    if data[:4] == b"fLaC":
        return "flac", "audio/flac"
    return None


def wrap_pcm_as_wav(
    pcm: bytes,
    *,
    sample_rate: int = PCM_SAMPLE_RATE,
    channels: int = PCM_CHANNELS,
    sample_width: int = PCM_SAMPLE_WIDTH,
) -> bytes:
    frame_size = channels * sample_width
    usable = len(pcm) - (len(pcm) % frame_size)
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(sample_width)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm[:usable])
    return buffer.getvalue()


def normalize_audio(data: bytes) -> AudioBlob:
    if not data:
        raise ValueError("Audio payload is empty")
    detected = detect_container(data)
    if detected is not None:
        extension, content_type = detected
        return AudioBlob(data=data, extension=extension, content_type=content_type)
    return AudioBlob(data=wrap_pcm_as_wav(data), extension="wav", content_type="audio/wav")
