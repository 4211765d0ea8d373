"""Acyclicity and reference checks over a recipe's step graph"""
from typing import Dict, List, Protocol, Sequence

from shared.errors import CycleError, DanglingDependency, RecipeDefinitionError

WHITE, GRAY, BLACK = 0, 1, 2


class StepLike(Protocol):
    id: str
    order: int
    depends_on: List[str]


class DependencyValidator:
    """Validates that a step collection forms a self-consistent DAG.

    Runs before a recipe is saved and again when a snapshot is taken.
    Snapshots are immutable copies of a graph that already passed, so they
    never need the check again.
    """

    def validate(self, steps: Sequence[StepLike]) -> None:
        """Raise DanglingDependency or CycleError if the graph is invalid.

        Args:
            steps: Live recipe steps or snapshot steps

        Raises:
            RecipeDefinitionError: On duplicate step ids
            DanglingDependency: If a depends_on id is not a step of this recipe
            CycleError: If the depends_on edges form a cycle
        """
        graph = self._build_adjacency(steps)
        self._check_cycles(graph, {step.id: step.order for step in steps})

    def _build_adjacency(self, steps: Sequence[StepLike]) -> Dict[str, List[str]]:
        """Map step id -> ids it depends on, rejecting unknown references."""
        step_ids = set()
        for step in steps:
            if step.id in step_ids:
                raise RecipeDefinitionError(f"Duplicate step id: {step.id}")
            step_ids.add(step.id)

        graph: Dict[str, List[str]] = {}
        for step in steps:
            for dep_id in step.depends_on:
                if dep_id not in step_ids:
                    raise DanglingDependency(step.order, dep_id)
            graph[step.id] = list(step.depends_on)
        return graph

    def _check_cycles(self, graph: Dict[str, List[str]],
                      orders: Dict[str, int]) -> None:
        """Iterative white/gray/black DFS, safe for arbitrarily long chains"""
        color = {step_id: WHITE for step_id in graph}

        for root in graph:
            if color[root] != WHITE:
                continue
            color[root] = GRAY
            stack = [(root, iter(graph[root]))]
            while stack:
                step_id, deps = stack[-1]
                dep_id = next(deps, None)
                if dep_id is None:
                    color[step_id] = BLACK
                    stack.pop()
                elif color[dep_id] == GRAY:
                    raise CycleError(dep_id, orders.get(dep_id))
                elif color[dep_id] == WHITE:
                    color[dep_id] = GRAY
                    stack.append((dep_id, iter(graph[dep_id])))


def validate_steps(steps: Sequence[StepLike]) -> None:
    """Module-level shortcut for DependencyValidator().validate"""
    DependencyValidator().validate(steps)
