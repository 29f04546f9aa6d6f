from .audio import AudioSynthesizer, PlaceholderAudioSource, SynthesizedAudioSource
from .config import GenerationConfig, load_callback_secret, load_generation_config
from .intake import create_prompt_for_user, require_prompt_by_public_id
from .script import ScriptSynthesizer
from .translate import Translator

__all__ = [
    "AudioSynthesizer",
    "PlaceholderAudioSource",
    "SynthesizedAudioSource",
    "GenerationConfig",
    "load_callback_secret",
    "load_generation_config",
    "create_prompt_for_user",
    "require_prompt_by_public_id",
    "ScriptSynthesizer",
    "Translator",
]
