"""Script analyzer agent: script text + target duration -> ordered scenes."""

import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..cancel import CancelToken, check
from ..errors import AnalysisError, EmptyScriptError
from ..models import Scene, TransitionType, total_duration
from ..models.job import validate_run_inputs
from .base import BaseAgent

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_TEMPLATE = """You are a script-parsing assistant for a video generator.
The user will provide a script and a total video duration. Parse the script and convert it into a structured JSON array of scenes.
The total duration of the video must be exactly {duration} seconds. Distribute this total among the scenes you create, based on the script's content. The sum of all scene durations must equal the total duration.
For each scene described in the script, produce:
- "description": A short summary of the scene, in the language of the script.
- "imagePrompt": A detailed, descriptive prompt in English for an AI image generator to create the visual for the scene.
- "duration": The duration for this scene in seconds. The sum of all durations must be {duration}.
- "transition": The transition into the next scene, one of: {transitions}. Use "Fade" for the last scene.
Output a valid JSON array of scenes only, with no additional text or markdown formatting."""


class SceneAnalyzer(Protocol):
    """Anything that can split a script into timed scenes."""

    def analyze(
        self,
        script_text: str,
        target_duration_seconds: int,
        cancel_token: Optional[CancelToken] = None,
    ) -> List[Scene]:
        ...


class AnalyzedScene(BaseModel):
    """One scene as returned by the model, before ids and images are attached."""

    model_config = ConfigDict(populate_by_name=True)

    description: str
    image_prompt: str = Field(..., alias="imagePrompt", min_length=1)
    duration: float = Field(..., gt=0)
    transition: TransitionType = TransitionType.FADE


_scene_list = TypeAdapter(List[AnalyzedScene])


def build_system_prompt(duration) -> str:
    """System prompt asking for scenes that fill `duration` seconds."""
    return SYSTEM_PROMPT_TEMPLATE.format(
        duration=duration,
        transitions=", ".join(f'"{t.value}"' for t in TransitionType),
    )


@dataclass
class AnalysisInput:
    """Input data for the script analyzer."""

    script: str
    duration: int


class ScriptAnalyzer(BaseAgent[AnalysisInput, List[Scene]]):
    """Agent that turns a free-text script into timed scenes.

    The returned scenes are ordered as in the script, have no images yet,
    and their durations sum to the requested total.
    """

    @property
    def name(self) -> str:
        return "ScriptAnalyzer"

    @property
    def system_prompt(self) -> str:
        return build_system_prompt("the requested number of")

    def analyze(
        self,
        script_text: str,
        target_duration_seconds: int,
        cancel_token: Optional[CancelToken] = None,
    ) -> List[Scene]:
        return self.run(AnalysisInput(script_text, target_duration_seconds), cancel_token)

    def run(
        self, input_data: AnalysisInput, cancel_token: Optional[CancelToken] = None
    ) -> List[Scene]:
        """Analyze the script.

        Raises:
            ValidationError: If the script is blank or the duration not positive.
            AnalysisError: If the reply is not a valid scene array.
            EmptyScriptError: If the reply contains no scenes.
        """
        validate_run_inputs(input_data.script, input_data.duration)
        self._logger.info(
            f"Analyzing script of {len(input_data.script)} chars "
            f"(duration: {input_data.duration}s)"
        )

        response = self._create_message(
            prompt=input_data.script,
            max_tokens=8192,
            temperature=0.4,
            cancel_token=cancel_token,
            system=build_system_prompt(input_data.duration),
        )
        check(cancel_token)

        scenes = parse_scenes(response, input_data.duration)
        self._logger.info(f"Analyzed {len(scenes)} scenes")
        return scenes


def parse_scenes(response: str, target_duration: int) -> List[Scene]:
    """Parse a model reply into scenes whose durations sum to `target_duration`.

    Raises:
        AnalysisError: On non-JSON or schema-violating data.
        EmptyScriptError: If the array is empty.
    """
    json_str = extract_json(response)
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        logger.debug(f"Raw response: {response}")
        raise AnalysisError(f"Invalid JSON in analyzer response: {e}") from e

    # Accept {"scenes": [...]} as well as a bare array
    if isinstance(data, dict):
        data = data.get("scenes", data)
    if not isinstance(data, list):
        raise AnalysisError("Analyzer response does not contain a scenes array")
    if not data:
        raise EmptyScriptError(
            "The script produced no scenes. Try again with a more detailed script."
        )

    try:
        analyzed = _scene_list.validate_python(data)
    except PydanticValidationError as e:
        raise AnalysisError(f"Analyzer response violates the scene schema: {e}") from e

    scenes = [
        Scene(
            description=item.description,
            image_prompt=item.image_prompt,
            duration=item.duration,
            transition=item.transition,
        )
        for item in analyzed
    ]
    return conform_durations(scenes, target_duration)


def extract_json(response: str) -> str:
    """Extract JSON from a response that may contain markdown or other text."""
    if "```" in response:
        start = response.find("```")
        start = response.find("\n", start) + 1 if response.startswith("```json", start) else start + 3
        end = response.find("```", start)
        if end > start:
            return response[start:end].strip()

    # Raw JSON array or object, whichever opens first
    starts = [(response.find(ch), ch) for ch in "[{" if response.find(ch) != -1]
    if starts:
        start, start_char = min(starts)
        end_char = "]" if start_char == "[" else "}"
        depth = 0
        in_string = False
        escaped = False
        for i, char in enumerate(response[start:], start):
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == start_char:
                depth += 1
            elif char == end_char:
                depth -= 1
                if depth == 0:
                    return response[start:i + 1]

    return response.strip()


def conform_durations(scenes: List[Scene], target_duration: int) -> List[Scene]:
    """Make scene durations sum to `target_duration`.

    Durations already summing to the target are left alone. Otherwise they
    are scaled proportionally and rounded to a tenth of a second. The work is
    done in whole tenths so the rounding remainder that lands on the last
    scene leaves the total exact.

    Raises:
        AnalysisError: If rescaling leaves any scene without positive duration.
    """
    current_total = total_duration(scenes)
    if current_total == target_duration:
        return scenes

    logger.warning(
        f"Scene durations sum to {current_total:g}s, expected {target_duration}s; rescaling"
    )
    scale_factor = target_duration / current_total
    tenths = [round(scene.duration * scale_factor * 10) for scene in scenes[:-1]]
    tenths.append(target_duration * 10 - sum(tenths))

    if any(t <= 0 for t in tenths):
        raise AnalysisError(
            f"Cannot fit {len(scenes)} scenes into {target_duration}s "
            f"(scene durations sum to {current_total:g}s)"
        )

    for scene, t in zip(scenes, tenths):
        scene.duration = t / 10
    return scenes
