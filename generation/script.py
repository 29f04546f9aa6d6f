from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from db.models import Prompt, Script, new_public_id
from pipeline.errors import GenerationError
from pipeline.retry import RetryPolicy

from .prompting import SCRIPT_SCHEMA, SCRIPT_SYSTEM_INSTRUCTION, SCRIPT_TASK, build_script_prompt

logger = logging.getLogger(__name__)

NARRATION_SEPARATOR = "\n\n"
SCRIPT_SEPARATOR = "\n\n"


class Scene(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scene_number: int = Field(alias="sceneNumber")
    manim_script: str = Field(alias="manimScript")
    narration: str
    duration: float = 0


class ScriptPayload(BaseModel):
    title: str
    explanation: str
    scenes: list[Scene]


@dataclass(frozen=True)
class ScriptResult:
    script: Script
    title: str
    explanation: str
    scenes: list[Scene]
    full_manim_script: str
    full_narration: str

    def as_payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "explanation": self.explanation,
            "scenes": [scene.model_dump(by_alias=True) for scene in self.scenes],
            "fullManimScript": self.full_manim_script,
            "fullNarration": self.full_narration,
        }


def parse_script_output(raw: str | None) -> ScriptPayload:
    if raw is None or not raw.strip():
        raise GenerationError("empty_response", "Empty response from language model")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise GenerationError("parse_failure", f"Failed to parse model response as JSON: {exc}") from exc
    try:
        payload = ScriptPayload.model_validate(data)
    except ValidationError as exc:
        raise GenerationError(
            "parse_failure", f"Model response does not match script schema: {exc}"
        ) from exc
    if not payload.scenes:
        raise GenerationError("no_scenes", "Model response contains no scenes")
    return payload


def join_scenes(scenes: list[Scene]) -> tuple[list[Scene], str, str]:
    ordered = sorted(scenes, key=lambda scene: scene.scene_number)
    full_script = SCRIPT_SEPARATOR.join(
        f"# Scene {scene.scene_number}\n{scene.manim_script.strip()}" for scene in ordered
    )
    full_narration = NARRATION_SEPARATOR.join(scene.narration.strip() for scene in ordered)
    return ordered, full_script, full_narration


class ScriptSynthesizer:
    def __init__(self, llm, retry: RetryPolicy | None = None) -> None:
        self._llm = llm
        self._retry = retry or RetryPolicy()

    def generate_script_for_prompt(self, session, prompt: Prompt) -> ScriptResult:
        raw = self._retry.run(
            lambda: self._llm.generate_text(
                task_type=SCRIPT_TASK,
                system_prompt=SCRIPT_SYSTEM_INSTRUCTION,
                user_prompt=build_script_prompt(prompt.prompt),
                json_schema=SCRIPT_SCHEMA,
            ),
            label=SCRIPT_TASK,
        )
        payload = parse_script_output(raw)
        scenes, full_script, full_narration = join_scenes(payload.scenes)

        script = Script(
            script_id=new_public_id(),
            prompt_id=prompt.id,
            title=payload.title,
            explanation=payload.explanation,
            script=full_script,
            narration=full_narration,
        )
        session.add(script)
        session.commit()
        logger.info(
            "script %s stored for prompt %s (%d scenes)",
            script.script_id,
            prompt.prompt_id,
            len(scenes),
        )
        return ScriptResult(
            script=script,
            title=payload.title,
            explanation=payload.explanation,
            scenes=scenes,
            full_manim_script=full_script,
            full_narration=full_narration,
        )
