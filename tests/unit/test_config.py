"""
Tests for configuration merging and resolution.

Covers:
- Recursive merge of nested sections, concatenation of array options
- camelCase aliases (skipFrames, videoOptimized, async, return)
- The non-video override forcing frame-skip to zero
- YAML loading and error reporting
"""

import pytest
from pydantic import ValidationError

from lumen_human.config import (
    DEFAULT_CONFIG,
    HumanConfig,
    load_config,
    merge_config,
    resolve,
)
from lumen_human.exceptions import ConfigError


class TestMergeConfig:
    """Test the recursive merge combinator."""

    def test_none_layers_are_empty(self):
        assert merge_config(DEFAULT_CONFIG, None, None) == DEFAULT_CONFIG
        assert merge_config(None) == DEFAULT_CONFIG

    def test_nested_sections_merge(self):
        config = merge_config(DEFAULT_CONFIG, {"face": {"age": {"enabled": False}}})

        assert config.face.age.enabled is False
        # Siblings keep their defaults
        assert config.face.gender.enabled is True
        assert config.face.age.skip_frames == DEFAULT_CONFIG.face.age.skip_frames

    def test_latest_scalar_wins(self):
        config = merge_config(
            DEFAULT_CONFIG,
            {"backend": "cuda", "hand": {"skip_frames": 3}},
            {"hand": {"skip_frames": 7}},
        )

        assert config.backend == "cuda"
        assert config.hand.skip_frames == 7

    def test_arrays_concatenate(self):
        config = merge_config(
            DEFAULT_CONFIG,
            {"providers": ["OpenVINOExecutionProvider"]},
            {"providers": ["CPUExecutionProvider"]},
        )

        assert config.providers == ("OpenVINOExecutionProvider", "CPUExecutionProvider")

    def test_camel_case_aliases(self):
        config = merge_config(
            DEFAULT_CONFIG,
            {
                "videoOptimized": False,
                "async": True,
                "face": {"detector": {"skipFrames": 4, "minConfidence": 0.3}},
                "filter": {"enabled": True, "return": True},
            },
        )

        assert config.video_optimized is False
        assert config.concurrent is True
        assert config.face.detector.skip_frames == 4
        assert config.face.detector.min_confidence == 0.3
        assert config.filter.return_ is True

    def test_merge_is_associative(self):
        a = {"face": {"emotion": {"min_confidence": 0.2}}, "providers": ["A"]}
        b = {"face": {"emotion": {"skipFrames": 1}, "enabled": False}, "providers": ["B"]}

        assert merge_config(DEFAULT_CONFIG, a, b) == merge_config(merge_config(DEFAULT_CONFIG, a), b)

    def test_inputs_are_not_modified(self):
        override = {"face": {"age": {"skip_frames": 2}}}
        base = merge_config(DEFAULT_CONFIG, {"backend": "cpu"})

        merged = merge_config(base, override)

        assert override == {"face": {"age": {"skip_frames": 2}}}
        assert base.face.age.skip_frames == DEFAULT_CONFIG.face.age.skip_frames
        assert merged is not base

    def test_config_is_frozen(self):
        with pytest.raises(ValidationError):
            DEFAULT_CONFIG.backend = "cuda"

    def test_unknown_option_raises(self):
        with pytest.raises(ConfigError, match="Unknown option 'colour'"):
            merge_config(DEFAULT_CONFIG, {"filter": {"colour": 1}})

    def test_invalid_value_raises(self):
        with pytest.raises(ConfigError):
            merge_config(DEFAULT_CONFIG, {"face": {"detector": {"skip_frames": -1}}})

    def test_non_mapping_layer_raises(self):
        with pytest.raises(ConfigError):
            merge_config(DEFAULT_CONFIG, ["backend", "cpu"])

    def test_model_layer(self):
        layer = HumanConfig(backend="coreml")

        assert merge_config(DEFAULT_CONFIG, layer).backend == "coreml"


class TestResolve:
    """Test per-call configuration resolution."""

    def test_video_optimized_keeps_skip_frames(self):
        config = resolve(DEFAULT_CONFIG, {"face": {"age": {"skipFrames": 5}}})

        assert config.face.age.skip_frames == 5
        assert config.face.detector.skip_frames == DEFAULT_CONFIG.face.detector.skip_frames

    def test_non_video_forces_zero_skip_frames(self):
        config = resolve(
            DEFAULT_CONFIG,
            {
                "videoOptimized": False,
                "face": {
                    "detector": {"skipFrames": 5},
                    "age": {"skipFrames": 5},
                    "emotion": {"skipFrames": 5},
                },
                "hand": {"skipFrames": 5},
            },
        )

        assert config.face.detector.skip_frames == 0
        assert config.face.age.skip_frames == 0
        assert config.face.gender.skip_frames == 0
        assert config.face.emotion.skip_frames == 0
        assert config.hand.skip_frames == 0

    def test_video_optimized_argument_wins(self):
        config = resolve(DEFAULT_CONFIG, {"hand": {"skipFrames": 3}}, video_optimized=False)

        assert config.video_optimized is False
        assert config.hand.skip_frames == 0

    def test_missing_layers(self):
        assert resolve(None, None) == DEFAULT_CONFIG


class TestLoadConfig:
    """Test YAML override files."""

    def test_load_mapping(self, tmp_path):
        path = tmp_path / "human.yaml"
        path.write_text("backend: cuda\nface:\n  detector:\n    skipFrames: 2\n")

        overrides = load_config(path)
        config = merge_config(DEFAULT_CONFIG, overrides)

        assert overrides["backend"] == "cuda"
        assert config.face.detector.skip_frames == 2

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(path) == {}

    def test_non_mapping_top_level(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("face: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(tmp_path / "missing.yaml")
