"""Unit tests for the pipeline registry and pipelines file loading."""

import pytest

from src.brokerage.errors import PipelineNotFoundError, StageGraphError
from src.brokerage.stages import (
    DEFAULT_PIPELINE_ID,
    CustomPipeline,
    PipelineConfigError,
    PipelineRegistry,
    StageConfig,
    build_registry,
    load_pipelines_file,
)


VALID_PIPELINES_YAML = """
pipelines:
  - id: intake-only
    name: Intake Only
    description: Short intake workflow
    stages:
      - id: new
        title: New
        order: 1
        allowed_transitions: [done]
        automated_actions: [send-intake-form]
      - id: done
        title: Done
        order: 2
"""


def _pipeline(pipeline_id: str = "custom", is_default: bool = False) -> CustomPipeline:
    return CustomPipeline(
        id=pipeline_id,
        name=pipeline_id.title(),
        is_default=is_default,
        stages=(
            StageConfig(id="a", title="A", order=1, allowed_transitions=("b",)),
            StageConfig(id="b", title="B", order=2),
        ),
    )


class TestPipelineRegistry:
    def test_builtin_pipelines(self):
        registry = PipelineRegistry()

        assert registry.default_pipeline().id == DEFAULT_PIPELINE_ID
        assert [p.id for p in registry.list_pipelines()] == [
            DEFAULT_PIPELINE_ID,
            "simple-workflow",
        ]
        assert registry.graph_for(None).entry_stage() == "lead-intake"
        assert registry.graph_for("simple-workflow").entry_stage() == "new-lead"
        assert "simple-workflow" in registry

    def test_unknown_pipeline(self):
        registry = PipelineRegistry()

        with pytest.raises(PipelineNotFoundError):
            registry.get("missing")
        with pytest.raises(PipelineNotFoundError):
            registry.graph_for("missing")

    def test_duplicate_registration(self):
        registry = PipelineRegistry()

        with pytest.raises(PipelineConfigError):
            registry.register(_pipeline(DEFAULT_PIPELINE_ID))

        registry.register(_pipeline(DEFAULT_PIPELINE_ID), replace=True)
        assert registry.graph_for(DEFAULT_PIPELINE_ID).entry_stage() == "a"

    def test_new_default_pipeline(self):
        registry = PipelineRegistry()

        registry.register(_pipeline("house", is_default=True))

        assert registry.default_pipeline().id == "house"
        assert registry.graph_for(None).pipeline_id == "house"

    def test_first_pipeline_is_default_when_none_flagged(self):
        registry = PipelineRegistry([_pipeline("one"), _pipeline("two")])

        assert registry.default_pipeline().id == "one"

    def test_invalid_graph_is_rejected(self):
        broken = CustomPipeline(
            id="broken",
            name="Broken",
            stages=(StageConfig(id="a", title="A", allowed_transitions=("nowhere",)),),
        )

        with pytest.raises(StageGraphError):
            PipelineRegistry([broken])


class TestLoadPipelinesFile:
    def test_load_valid_file(self, tmp_path):
        path = tmp_path / "pipelines.yaml"
        path.write_text(VALID_PIPELINES_YAML)

        (pipeline,) = load_pipelines_file(str(path))

        assert pipeline.id == "intake-only"
        assert [s.id for s in pipeline.stages] == ["new", "done"]
        assert pipeline.stages[0].automated_actions == ("send-intake-form",)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_pipelines_file(str(tmp_path / "missing.yaml"))

    @pytest.mark.parametrize(
        "content",
        [
            "",
            "pipelines: []",
            "other: 1",
            "pipelines: [unclosed",
            "pipelines:\n  - id: x\n    name: X\n    stages: []\n",
            (
                "pipelines:\n"
                "  - id: x\n"
                "    name: X\n"
                "    stages:\n"
                "      - id: a\n"
                "        title: A\n"
                "        allowed_transitions: [b]\n"
            ),
        ],
    )
    def test_invalid_files(self, tmp_path, content):
        path = tmp_path / "pipelines.yaml"
        path.write_text(content)

        with pytest.raises(PipelineConfigError):
            load_pipelines_file(str(path))

    def test_build_registry_adds_file_pipelines(self, tmp_path):
        path = tmp_path / "pipelines.yaml"
        path.write_text(VALID_PIPELINES_YAML)

        registry = build_registry(str(path))

        assert "intake-only" in registry
        assert registry.default_pipeline().id == DEFAULT_PIPELINE_ID
        assert registry.graph_for("intake-only").lookup("new").automated_actions == (
            "send-intake-form",
        )

    def test_build_registry_without_file(self):
        registry = build_registry(None)

        assert len(registry.list_pipelines()) == 2
