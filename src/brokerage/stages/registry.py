"""Registry of the pipelines available to organizations.

The registry maps pipeline ids to their CustomPipeline definition and
the StageGraph built from it. It always contains the built-in pipelines;
more can be loaded from a YAML file at startup.

Pipelines file format:

    pipelines:
      - id: intake-only
        name: Intake Only
        description: Short intake workflow
        is_default: false
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

import logging
from typing import Dict, Iterable, List, Optional

import yaml
from pydantic import ValidationError

from src.brokerage.errors import PipelineNotFoundError, StageGraphError
from src.brokerage.stages.graph import StageGraph
from src.brokerage.stages.models import DEFAULT_PIPELINES, CustomPipeline


logger = logging.getLogger(__name__)


class PipelineConfigError(Exception):
    """Raised when a pipelines file cannot be parsed or validated."""


class PipelineRegistry:
    """Holds the pipelines and stage graphs known to the service.

    Exactly one pipeline is the default; it is used for clients that
    reference no pipeline.

    Example:
        >>> registry = PipelineRegistry()
        >>> registry.default_pipeline().id
        'disability-services'
        >>> registry.graph_for(None).entry_stage()
        'lead-intake'
    """

    def __init__(self, pipelines: Optional[Iterable[CustomPipeline]] = None):
        """Initialize the registry.

        Args:
            pipelines: Pipelines to register. Defaults to the built-in
                pipelines.

        Raises:
            StageGraphError: If a pipeline's stages are not a valid graph.
            PipelineConfigError: If pipeline ids collide or no default is set.
        """
        self._pipelines: Dict[str, CustomPipeline] = {}
        self._graphs: Dict[str, StageGraph] = {}
        self._default_id: Optional[str] = None

        for pipeline in pipelines if pipelines is not None else DEFAULT_PIPELINES:
            self.register(pipeline)

        if self._default_id is None and self._pipelines:
            # Fall back to the first registered pipeline
            self._default_id = next(iter(self._pipelines))

    def register(self, pipeline: CustomPipeline, replace: bool = False) -> StageGraph:
        """Register a pipeline and build its stage graph.

        Args:
            pipeline: The pipeline definition.
            replace: Allow replacing a pipeline with the same id.

        Returns:
            The stage graph built for the pipeline.

        Raises:
            StageGraphError: If the stages are not a valid graph.
            PipelineConfigError: If the id is taken and replace is False.
        """
        if pipeline.id in self._pipelines and not replace:
            raise PipelineConfigError(f"Duplicate pipeline id: {pipeline.id}")

        graph = StageGraph.from_pipeline(pipeline)
        self._pipelines[pipeline.id] = pipeline
        self._graphs[pipeline.id] = graph

        if pipeline.is_default:
            if self._default_id is not None and self._default_id != pipeline.id:
                logger.info(
                    "Replacing default pipeline",
                    extra={"previous": self._default_id, "pipeline_id": pipeline.id},
                )
            self._default_id = pipeline.id

        logger.debug(
            "Registered pipeline",
            extra={"pipeline_id": pipeline.id, "stages": len(graph)},
        )
        return graph

    def get(self, pipeline_id: str) -> CustomPipeline:
        """Get a pipeline definition by id.

        Raises:
            PipelineNotFoundError: If the id is not registered.
        """
        pipeline = self._pipelines.get(pipeline_id)
        if pipeline is None:
            raise PipelineNotFoundError(pipeline_id)
        return pipeline

    def default_pipeline(self) -> CustomPipeline:
        """Get the pipeline used for clients without a pipeline id."""
        if self._default_id is None:
            raise PipelineNotFoundError("<default>")
        return self._pipelines[self._default_id]

    def graph_for(self, pipeline_id: Optional[str]) -> StageGraph:
        """Get the stage graph for a pipeline id, or the default one.

        Raises:
            PipelineNotFoundError: If the id is not registered.
        """
        if pipeline_id is None:
            return self._graphs[self.default_pipeline().id]
        graph = self._graphs.get(pipeline_id)
        if graph is None:
            raise PipelineNotFoundError(pipeline_id)
        return graph

    def list_pipelines(self) -> List[CustomPipeline]:
        """List registered pipelines, default first, then by id."""
        return sorted(
            self._pipelines.values(),
            key=lambda p: (p.id != self._default_id, p.id),
        )

    def __contains__(self, pipeline_id: object) -> bool:
        return pipeline_id in self._pipelines


def load_pipelines_file(path: str) -> List[CustomPipeline]:
    """Load custom pipelines from a YAML file.

    Each pipeline is validated into a CustomPipeline and its stages are
    checked by building a StageGraph.

    Args:
        path: Path to the YAML file.

    Returns:
        The parsed pipelines.

    Raises:
        FileNotFoundError: If the file does not exist.
        PipelineConfigError: If parsing or validation fails.
    """
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Pipelines file not found: {path}")
    except yaml.YAMLError as e:
        raise PipelineConfigError(f"Failed to parse YAML: {e}") from e

    if not data or not isinstance(data, dict):
        raise PipelineConfigError("Pipelines file is empty")

    entries = data.get("pipelines")
    if not isinstance(entries, list) or not entries:
        raise PipelineConfigError("Pipelines file must contain a 'pipelines' list")

    pipelines = []
    for index, entry in enumerate(entries):
        try:
            pipeline = CustomPipeline.model_validate(entry)
        except ValidationError as e:
            raise PipelineConfigError(f"Invalid pipeline at index {index}: {e}") from e

        try:
            StageGraph.from_pipeline(pipeline)
        except StageGraphError as e:
            raise PipelineConfigError(str(e)) from e

        pipelines.append(pipeline)

    logger.info(
        "Loaded pipelines file",
        extra={"path": path, "pipelines": [p.id for p in pipelines]},
    )
    return pipelines


def build_registry(pipelines_file: Optional[str] = None) -> PipelineRegistry:
    """Build a registry of the built-in pipelines plus any from a file.

    Pipelines from the file replace built-ins with the same id.
    """
    registry = PipelineRegistry()
    if pipelines_file:
        for pipeline in load_pipelines_file(pipelines_file):
            registry.register(pipeline, replace=True)
    return registry
