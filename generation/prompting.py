from __future__ import annotations

from typing import Any

SCRIPT_TASK = "script_generate"
TRANSLATE_TASK = "narration_translate"

SCRIPT_SYSTEM_INSTRUCTION = """You are an educational animator writing Manim Community Edition scenes
in the style of 3Blue1Brown. Given a topic, plan a complete lesson and return JSON only.

Lesson shape:
- 12 to 18 scenes, each roughly 30 to 50 seconds of narration.
- Open with intuition, build the idea step by step, close with a short recap.
- Every scene has one self-contained Python class deriving from Scene named Scene<N>.

Manim rules:
- Use Text, never Tex or MathTex. No LaTeX anywhere.
- Do not use updaters, always_redraw or ValueTracker.
- Keep every object inside the default frame; fade out objects before reusing space.
- Import only from manim. Never read files, the network or external assets.
- End each construct() with self.wait() so the narration can finish.

Narration rules:
- Spoken, friendly, plain sentences that match what is on screen in that scene.
- No markdown, no stage directions, no scene labels inside the narration text.
- duration is the estimated narration length of the scene in seconds.
"""

SCRIPT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "explanation": {"type": "string"},
        "scenes": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "sceneNumber": {"type": "number"},
                    "manimScript": {"type": "string"},
                    "narration": {"type": "string"},
                    "duration": {"type": "number"},
                },
                "required": ["sceneNumber", "manimScript", "narration", "duration"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["title", "explanation", "scenes"],
    "additionalProperties": False,
}


def build_script_prompt(topic: str) -> str:
    return f'Generate a video script for the topic: "{topic.strip()}"'


def build_translation_prompts(text: str, language: str) -> tuple[str, str]:
    system_prompt = (
        f"You translate narration for short educational videos into {language}. "
        "Use a casual, conversational register, the way a friendly tutor talks. "
        "Keep technical terms that are normally left untranslated. "
        "Return only the translated narration, with no notes or quotes."
    )
    user_prompt = f"Translate this narration into {language}:\n\n{text}"
    return system_prompt, user_prompt
