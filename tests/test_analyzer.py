"""Tests for the script analyzer agent and its response parsing."""

import json
import random

import pytest

from scenereel.agents.analyzer import (
    ScriptAnalyzer,
    conform_durations,
    extract_json,
    parse_scenes,
)
from scenereel.errors import AnalysisError, EmptyScriptError, ValidationError
from scenereel.models import TransitionType, total_duration

from conftest import FakeAnthropicClient, make_scenes


def scene_json(durations, transition="Fade"):
    return json.dumps([
        {
            "description": f"Cảnh {i + 1}",
            "imagePrompt": f"prompt {i}",
            "duration": d,
            "transition": transition,
        }
        for i, d in enumerate(durations)
    ])


class TestExtractJson:
    """Tests for pulling JSON out of model replies."""

    def test_plain_array(self):
        assert extract_json('[{"a": 1}]') == '[{"a": 1}]'

    def test_fenced_json_block(self):
        reply = 'Here you go:\n```json\n[{"a": 1}]\n```\nEnjoy'
        assert extract_json(reply) == '[{"a": 1}]'

    def test_bare_fence(self):
        assert extract_json('```\n{"scenes": []}\n```') == '{"scenes": []}'

    def test_array_embedded_in_prose(self):
        reply = 'Sure! [{"description": "a ] tricky one", "x": [1, 2]}] Thanks.'
        assert json.loads(extract_json(reply)) == [{"description": "a ] tricky one", "x": [1, 2]}]


class TestParseScenes:
    """Tests for turning replies into validated scenes."""

    def test_valid_response(self):
        scenes = parse_scenes(scene_json([6, 4], "Dissolve"), 10)
        assert [s.duration for s in scenes] == [6, 4]
        assert scenes[0].image_prompt == "prompt 0"
        assert scenes[0].description == "Cảnh 1"
        assert scenes[0].transition is TransitionType.DISSOLVE
        assert all(s.image_ref is None for s in scenes)
        assert len({s.id for s in scenes}) == 2

    def test_scenes_wrapper_object(self):
        reply = json.dumps({"scenes": json.loads(scene_json([10]))})
        assert len(parse_scenes(reply, 10)) == 1

    def test_order_preserved(self):
        scenes = parse_scenes(scene_json([1, 2, 3, 4]), 10)
        assert [s.image_prompt for s in scenes] == ["prompt 0", "prompt 1", "prompt 2", "prompt 3"]

    def test_not_json(self):
        with pytest.raises(AnalysisError, match="Invalid JSON"):
            parse_scenes("I cannot help with that.", 10)

    def test_not_an_array(self):
        with pytest.raises(AnalysisError, match="scenes array"):
            parse_scenes('{"title": "x"}', 10)

    def test_empty_array(self):
        with pytest.raises(EmptyScriptError):
            parse_scenes("[]", 10)

    def test_missing_field(self):
        reply = json.dumps([{"description": "x", "duration": 10, "transition": "Fade"}])
        with pytest.raises(AnalysisError, match="schema"):
            parse_scenes(reply, 10)

    def test_unknown_transition(self):
        with pytest.raises(AnalysisError):
            parse_scenes(scene_json([10], "Spin"), 10)

    def test_non_positive_duration(self):
        with pytest.raises(AnalysisError):
            parse_scenes(scene_json([10, 0]), 10)

    def test_empty_script_error_is_analysis_error(self):
        assert issubclass(EmptyScriptError, AnalysisError)


class TestConformDurations:
    """Tests for the duration-sum guarantee."""

    def test_exact_sum_untouched(self):
        scenes = make_scenes([5, 8, 6])
        assert [s.duration for s in conform_durations(scenes, 19)] == [5, 8, 6]

    def test_rescales_mismatched_sum(self):
        scenes = conform_durations(make_scenes([5, 5]), 30)
        assert [s.duration for s in scenes] == [15, 15]

    def test_remainder_lands_on_last_scene(self):
        scenes = conform_durations(make_scenes([1, 1, 1]), 10)
        assert [s.duration for s in scenes] == [3.3, 3.3, 3.4]
        assert total_duration(scenes) == 10

    def test_fractional_durations_summing_to_target_untouched(self):
        scenes = conform_durations(make_scenes([3.3, 3.3, 3.4]), 10)
        assert [s.duration for s in scenes] == [3.3, 3.3, 3.4]
        assert total_duration(scenes) == 10

    def test_rejects_when_scenes_cannot_fit(self):
        with pytest.raises(AnalysisError):
            conform_durations(make_scenes([100, 100, 0.01]), 1)

    def test_duration_conservation_over_random_responses(self):
        rng = random.Random(1234)
        for _ in range(2000):
            count = rng.randint(1, 12)
            target = rng.randint(10 * count, 600)
            durations = [round(rng.uniform(1, 10), 2) for _ in range(count)]
            scenes = parse_scenes(scene_json(durations), target)
            assert total_duration(scenes) == target
            assert all(s.duration > 0 for s in scenes)


class TestScriptAnalyzer:
    """Tests for the agent wrapper."""

    def test_analyze_sends_script_and_target(self):
        client = FakeAnthropicClient(scene_json([6, 4]))
        analyzer = ScriptAnalyzer(client=client)

        scenes = analyzer.analyze("A cat in space. The cat lands.", 10)

        assert [s.duration for s in scenes] == [6, 4]
        assert client.calls[0]["prompt"] == "A cat in space. The cat lands."
        assert "exactly 10 seconds" in client.calls[0]["system"]
        assert '"Slide Left"' in client.calls[0]["system"]

    def test_system_prompt_follows_each_call(self):
        client = FakeAnthropicClient(scene_json([6, 4]))
        analyzer = ScriptAnalyzer(client=client)

        analyzer.analyze("A cat in space.", 10)
        client.response = scene_json([20, 25])
        analyzer.analyze("A cat in space.", 45)

        assert "exactly 10 seconds" in client.calls[0]["system"]
        assert "exactly 45 seconds" in client.calls[1]["system"]
        assert "exactly 10 seconds" not in analyzer.system_prompt

    def test_validation_happens_before_calling_out(self):
        client = FakeAnthropicClient(scene_json([6, 4]))
        analyzer = ScriptAnalyzer(client=client)
        with pytest.raises(ValidationError):
            analyzer.analyze("  ", 10)
        with pytest.raises(ValidationError):
            analyzer.analyze("script", 0)
        assert client.calls == []

    def test_name(self):
        assert ScriptAnalyzer(client=FakeAnthropicClient("[]")).name == "ScriptAnalyzer"
