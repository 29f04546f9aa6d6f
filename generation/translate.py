from __future__ import annotations

import logging

from db.models import DEFAULT_LANGUAGE
from pipeline.errors import GenerationError
from pipeline.retry import RetryPolicy

from .intake import normalize_language
from .prompting import TRANSLATE_TASK, build_translation_prompts

logger = logging.getLogger(__name__)


class Translator:
    def __init__(self, llm, retry: RetryPolicy | None = None) -> None:
        self._llm = llm
        self._retry = retry or RetryPolicy()

    def translate_narration(self, text: str, target_language: str | None) -> str:
        language = normalize_language(target_language)
        if language == DEFAULT_LANGUAGE:
            return text
        system_prompt, user_prompt = build_translation_prompts(text, language)
        raw = self._retry.run(
            lambda: self._llm.generate_text(
                task_type=TRANSLATE_TASK,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                temperature=0.3,
            ),
            label=TRANSLATE_TASK,
        )
        translated = (raw or "").strip()
        if not translated:
            raise GenerationError("translation_failed", f"Empty translation into {language}")
        logger.info("translated narration into %s (%d chars)", language, len(translated))
        return translated
