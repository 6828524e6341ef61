"""Edge classification for automation graphs."""

import random
from dataclasses import dataclass, field
from typing import Iterable, Optional

from core.constants import BRANCH_HANDLE_PREFIX, FALSE_HANDLE, TRUE_HANDLE
from workflow.models import AutomationEdge


@dataclass
class EdgeRoutes:
    """Successor maps built once per run.

    ``straight`` keeps the first unconditional target of each node, later
    ones are ignored. ``conditional`` maps a node to its ``true``/``false``
    targets and ``randomized`` to every ``branch-*`` target in edge order.
    """

    straight: dict[str, str] = field(default_factory=dict)
    conditional: dict[str, dict[str, str]] = field(default_factory=dict)
    randomized: dict[str, list[str]] = field(default_factory=dict)

    def next_straight(self, node_id: str) -> Optional[str]:
        return self.straight.get(node_id)

    def next_conditional(self, node_id: str, outcome: bool) -> Optional[str]:
        handle = TRUE_HANDLE if outcome else FALSE_HANDLE
        return self.conditional.get(node_id, {}).get(handle)

    def pick_random(self, node_id: str, rng: random.Random) -> Optional[str]:
        """Choose one branch uniformly. None if the node has no branches."""
        branches = self.randomized.get(node_id)
        if not branches:
            return None
        return rng.choice(branches)


def classify(edges: Iterable[AutomationEdge]) -> EdgeRoutes:
    routes = EdgeRoutes()
    for edge in edges:
        handle = edge.source_handle
        if handle in (TRUE_HANDLE, FALSE_HANDLE):
            routes.conditional.setdefault(edge.source, {})[handle] = edge.target
        elif handle and handle.startswith(BRANCH_HANDLE_PREFIX):
            routes.randomized.setdefault(edge.source, []).append(edge.target)
        elif edge.source not in routes.straight:
            routes.straight[edge.source] = edge.target
    return routes
