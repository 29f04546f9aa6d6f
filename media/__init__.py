from .container import AudioBlob, normalize_audio
from .storage import SupabaseStorage, load_storage_config
from .tts import ElevenLabsClient, load_tts_config

__all__ = [
    "AudioBlob",
    "normalize_audio",
    "SupabaseStorage",
    "load_storage_config",
    "ElevenLabsClient",
    "load_tts_config",
]
