"""Tests for configuration and pattern table loading."""

import json

import pytest

from phasegate.config import EngineConfig, load_config, load_patterns
from phasegate.domain.exceptions import ConfigurationError
from phasegate.domain.models import ClassifiedRequest, ComplexityTier
from phasegate.domain.planning import Planner


def write(path, data) -> None:  # noqa: ANN001
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data if isinstance(data, str) else json.dumps(data))


class TestEngineConfig:
    """Defaults and construction."""

    def test_defaults(self) -> None:
        config = EngineConfig()

        assert config.max_retries == 3
        assert config.backoff_base_seconds == 1.0
        assert config.confidence_threshold == 0.6
        assert config.state_dir is None
        assert config.workers == {}

    def test_from_dict_rejects_unknown_keys(self) -> None:
        with pytest.raises(TypeError):
            EngineConfig.from_dict({"retries": 2})


class TestLoadConfig:
    """Tests for load_config()."""

    def test_valid_file(self, tmp_path) -> None:  # noqa: ANN001
        path = tmp_path / "phasegate.json"
        write(
            path,
            {
                "max_retries": 5,
                "max_workers": 2,
                "default_worker": "ScriptedWorker",
                "workers": {"architect": {"worker": "ScriptedWorker", "config": {"delay": 0}}},
                "output_schemas": {"source_bundle": {"type": "object"}},
            },
        )

        config = load_config(path)

        assert config.max_retries == 5
        assert config.max_workers == 2
        assert config.workers["architect"]["worker"] == "ScriptedWorker"
        assert config.output_schemas == {"source_bundle": {"type": "object"}}

    def test_relative_paths_resolve_against_file(self, tmp_path) -> None:  # noqa: ANN001
        """state_dir and patterns_file are relative to the config file."""
        path = tmp_path / "conf" / "phasegate.json"
        write(path, {"state_dir": "state", "patterns_file": "patterns.json"})

        config = load_config(path)

        assert config.state_dir == str((tmp_path / "conf" / "state").resolve())
        assert config.patterns_file == str((tmp_path / "conf" / "patterns.json").resolve())

    def test_missing_file(self, tmp_path) -> None:  # noqa: ANN001
        with pytest.raises(ConfigurationError, match="Configuration file not found"):
            load_config(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path) -> None:  # noqa: ANN001
        path = tmp_path / "phasegate.json"
        write(path, "{not json")

        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            load_config(path)

    def test_not_an_object(self, tmp_path) -> None:  # noqa: ANN001
        path = tmp_path / "phasegate.json"
        write(path, [1, 2])

        with pytest.raises(ConfigurationError, match="Expected dict"):
            load_config(path)

    def test_schema_violation_names_location(self, tmp_path) -> None:  # noqa: ANN001
        path = tmp_path / "phasegate.json"
        write(path, {"workers": {"architect": {"config": {}}}})

        with pytest.raises(ConfigurationError, match="workers/architect: 'worker' is a required"):
            load_config(path)

    def test_unknown_key(self, tmp_path) -> None:  # noqa: ANN001
        path = tmp_path / "phasegate.json"
        write(path, {"retries": 1})

        with pytest.raises(ConfigurationError, match="<root>"):
            load_config(path)


class TestLoadPatterns:
    """Tests for load_patterns()."""

    def test_custom_rule_and_skeleton(self, tmp_path) -> None:  # noqa: ANN001
        path = tmp_path / "patterns.json"
        write(
            path,
            {
                "rules": [{"complexity": "simple", "any_tags": ["data"], "skeleton": "etl"}],
                "skeletons": {
                    "etl": [
                        {
                            "phase_id": "extract",
                            "checkpoint": "blocking",
                            "checkpoint_type": "review",
                            "tasks": [{"task_id": "extractor", "output_schema": "rows"}],
                        },
                        {
                            "phase_id": "load",
                            "concurrent": False,
                            "tasks": [
                                {
                                    "task_id": "loader",
                                    "producer_id": "data_engineer",
                                    "output_schema": "report",
                                    "inputs": ["extractor"],
                                }
                            ],
                        },
                    ]
                },
            },
        )

        table = load_patterns(path)
        plan = Planner(table).plan(
            ClassifiedRequest("load orders", "feature", ComplexityTier.SIMPLE, frozenset({"data"}))
        )

        assert plan.pattern == "etl"
        assert [p.phase_id for p in plan.phases] == ["extract", "load"]
        assert plan.phases[0].checkpoint.value == "blocking"
        assert plan.phases[1].concurrent is False
        loader = plan.phases[1].tasks[0]
        assert loader.producer_id == "data_engineer"
        assert loader.inputs == ("extractor",)
        assert "four_phase" in table.skeletons

    def test_skeletons_only_keeps_default_rules(self, tmp_path) -> None:  # noqa: ANN001
        path = tmp_path / "patterns.json"
        write(
            path,
            {"skeletons": {"extra": [{"phase_id": "only", "tasks": []}]}},
        )

        table = load_patterns(path)

        assert table.match(
            ClassifiedRequest("x", "feature", ComplexityTier.SIMPLE, frozenset({"backend"}))
        ).name == "four_phase"

    def test_unknown_skeleton(self, tmp_path) -> None:  # noqa: ANN001
        path = tmp_path / "patterns.json"
        write(path, {"rules": [{"complexity": "simple", "any_tags": ["x"], "skeleton": "nope"}]})

        with pytest.raises(ConfigurationError, match="unknown skeleton 'nope'"):
            load_patterns(path)

    def test_schema_violation(self, tmp_path) -> None:  # noqa: ANN001
        path = tmp_path / "patterns.json"
        write(path, {"rules": [{"complexity": "trivial", "any_tags": ["x"], "skeleton": "a"}]})

        with pytest.raises(ConfigurationError, match="rules/0/complexity"):
            load_patterns(path)

    def test_missing_file(self, tmp_path) -> None:  # noqa: ANN001
        with pytest.raises(ConfigurationError, match="Patterns file not found"):
            load_patterns(tmp_path / "absent.json")
