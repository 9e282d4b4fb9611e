"""Tests for prompt building."""

import pytest

from soundstage.config import GenerationParams
from soundstage.generation import (
    MOOD_PROMPTS,
    build_ambience_prompt,
    build_music_prompt,
    generation_input,
    resolve_mood,
)


class TestResolveMood:
    """Test free-text mood mapping."""

    @pytest.mark.parametrize(
        "text,mood",
        [
            ("battle", "battle"),
            ("A tense COMBAT scene", "battle"),
            ("triumph over the dragon", "celebration"),
            ("calm village", "peaceful"),
            ("sorrowful farewell", "sad"),
            ("lets explore", "exploration"),
        ],
    )
    def test_keywords(self, text: str, mood: str) -> None:
        assert resolve_mood(text) == mood

    def test_unknown_defaults_to_exploration(self) -> None:
        assert resolve_mood("spaceship") == "exploration"
        assert resolve_mood(None) == "exploration"
        assert resolve_mood("") == "exploration"


class TestPrompts:
    """Test prompt text and job input."""

    def test_music_prompt_contains_template_and_terms(self) -> None:
        prompt = build_music_prompt("battle")

        assert prompt.startswith(MOOD_PROMPTS["battle"])
        assert "heroic brass" in prompt
        assert "no vocals" in prompt

    def test_ambience_prompt(self) -> None:
        prompt = build_ambience_prompt("Cave")

        assert "water drops" in prompt
        assert "no music" in prompt

    def test_unknown_ambience(self) -> None:
        with pytest.raises(KeyError):
            build_ambience_prompt("moon base")

    def test_generation_input(self) -> None:
        params = GenerationParams(model_version="large", duration=12, temperature=0.7)

        data = generation_input("music", "mystery", params)

        assert "whole tone scale" in data["prompt"]
        assert data["model_version"] == "large"
        assert data["duration"] == 12
        assert data["temperature"] == 0.7
        assert data["output_format"] == "mp3"
        assert data["normalization_strategy"] == "peak"
