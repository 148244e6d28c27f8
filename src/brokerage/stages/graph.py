"""Stage graph for a client pipeline.

The StageGraph holds the table of stage id → StageConfig for one
pipeline. It is built once (at startup or when a pipeline configuration
is loaded) and is read-only afterwards.

Construction checks the invariants of a pipeline:
- stage ids are unique
- every allowed destination is itself a stage of the graph
- every stage is reachable from the entry stage

Cycles and backward edges are allowed.
"""

from collections import deque
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Set

from src.brokerage.errors import InvalidStageError, StageGraphError
from src.brokerage.stages.models import (
    DEFAULT_PIPELINE_ID,
    DEFAULT_STAGE_CONFIGS,
    CustomPipeline,
    StageConfig,
    stage_value,
)


def _sort_key(config: StageConfig):
    return (config.order, config.id)


class StageGraph:
    """Read-only table of pipeline stages and their allowed moves.

    Attributes:
        pipeline_id: Id of the pipeline this graph describes.

    Example:
        >>> graph = StageGraph.default()
        >>> graph.entry_stage()
        'lead-intake'
        >>> graph.lookup("lead-intake").allowed_transitions
        ('client-onboarding',)
    """

    def __init__(
        self,
        stages: Iterable[StageConfig],
        pipeline_id: str = DEFAULT_PIPELINE_ID,
        entry_stage: Optional[str] = None,
    ):
        """Build and validate a stage graph.

        Args:
            stages: Stage configurations of the pipeline.
            pipeline_id: Id of the pipeline this graph describes.
            entry_stage: Stage new clients start in. Defaults to the
                stage with the lowest order (ties broken by id).

        Raises:
            StageGraphError: If the stages violate a graph invariant.
        """
        configs = list(stages)
        if not configs:
            raise StageGraphError(f"Pipeline {pipeline_id} has no stages")

        table = {}
        for config in configs:
            if config.id in table:
                raise StageGraphError(
                    f"Duplicate stage id {config.id} in pipeline {pipeline_id}"
                )
            table[config.id] = config

        self.pipeline_id = pipeline_id
        self._stages: Mapping[str, StageConfig] = MappingProxyType(table)
        self._ordered: List[StageConfig] = sorted(configs, key=_sort_key)

        if entry_stage is None:
            entry_stage = self._ordered[0].id
        elif entry_stage not in table:
            raise StageGraphError(
                f"Entry stage {entry_stage} is not a stage of pipeline {pipeline_id}"
            )
        self._entry_stage = entry_stage

        self._check_destinations()
        self._check_reachability()

    @classmethod
    def default(cls) -> "StageGraph":
        """Build the graph of the standard brokerage pipeline."""
        return cls(DEFAULT_STAGE_CONFIGS, pipeline_id=DEFAULT_PIPELINE_ID)

    @classmethod
    def from_pipeline(cls, pipeline: CustomPipeline) -> "StageGraph":
        """Build the graph of a custom pipeline."""
        return cls(pipeline.stages, pipeline_id=pipeline.id)

    def _check_destinations(self) -> None:
        for config in self._ordered:
            for target in config.allowed_transitions:
                if target not in self._stages:
                    raise StageGraphError(
                        f"Stage {config.id} allows a move to unknown stage {target} "
                        f"in pipeline {self.pipeline_id}"
                    )

    def _check_reachability(self) -> None:
        seen: Set[str] = {self._entry_stage}
        queue = deque([self._entry_stage])
        while queue:
            current = queue.popleft()
            for target in self._stages[current].allowed_transitions:
                if target not in seen:
                    seen.add(target)
                    queue.append(target)

        unreachable = [c.id for c in self._ordered if c.id not in seen]
        if unreachable:
            raise StageGraphError(
                f"Stages unreachable from {self._entry_stage} in pipeline "
                f"{self.pipeline_id}: {', '.join(unreachable)}"
            )

    def lookup(self, stage_id: str) -> StageConfig:
        """Get the configuration of a stage.

        Args:
            stage_id: The stage identifier.

        Returns:
            The stage configuration.

        Raises:
            InvalidStageError: If the stage is not part of this graph.
        """
        config = self._stages.get(stage_value(stage_id))
        if config is None:
            raise InvalidStageError(stage_value(stage_id))
        return config

    def has_stage(self, stage_id: str) -> bool:
        """Check whether a stage id belongs to this graph."""
        return stage_value(stage_id) in self._stages

    def entry_stage(self) -> str:
        """Get the stage new clients are created in."""
        return self._entry_stage

    def all_stages(self) -> List[StageConfig]:
        """Get all stages ordered by `order`, ties broken by stage id."""
        return list(self._ordered)

    def terminal_stages(self) -> List[str]:
        """Get the ids of stages with no outgoing transitions."""
        return [c.id for c in self._ordered if not c.allowed_transitions]

    def __contains__(self, stage_id: object) -> bool:
        return isinstance(stage_id, str) and self.has_stage(stage_id)

    def __len__(self) -> int:
        return len(self._stages)
