"""Stage transition validation.

Decides whether a proposed move between two stages of a pipeline is
legal. The validator has no state of its own; its answers depend only
on the StageGraph it was built with.
"""

from src.brokerage.stages.graph import StageGraph
from src.brokerage.stages.models import stage_value


class StageTransitionValidator:
    """Validates stage moves against a stage graph.

    A move is legal iff the target appears in the current stage's
    allowed_transitions. Moving a client to the stage it is already in
    is rejected so that no duplicate timeline entries are written;
    callers that want a no-op should compare stages before asking.

    Example:
        >>> validator = StageTransitionValidator(StageGraph.default())
        >>> validator.can_transition("lead-intake", "client-onboarding")
        True
        >>> validator.can_transition("lead-intake", "billing-automation")
        False
    """

    def __init__(self, graph: StageGraph):
        self.graph = graph

    def can_transition(self, current: str, target: str) -> bool:
        """Check whether a client may move from `current` to `target`.

        Args:
            current: The client's current stage id.
            target: The requested stage id.

        Returns:
            bool: True if the move is allowed, False otherwise.

        Raises:
            InvalidStageError: If either stage id is not in the graph.
        """
        current_config = self.graph.lookup(current)
        target_config = self.graph.lookup(target)

        if current_config.id == target_config.id:
            return False

        return target_config.id in current_config.allowed_transitions

    def allowed_targets(self, current: str) -> tuple:
        """Get the stage ids reachable in one move from `current`.

        Raises:
            InvalidStageError: If the stage id is not in the graph.
        """
        return self.graph.lookup(stage_value(current)).allowed_transitions
