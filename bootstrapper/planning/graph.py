"""Deterministic dependency-graph ordering helpers."""

from __future__ import annotations

import heapq
from collections.abc import Mapping

from .errors import InvalidPlanError


def planning_topological_order(dependencies: Mapping[str, tuple[str, ...]]) -> tuple[str, ...]:
    """Return a deterministic topological order of a dependency graph.

    Kahn's algorithm with a min-heap as the ready set, so ties are broken
    lexicographically and the same graph always yields the same order.

    Args:
        dependencies: Mapping of node to the nodes it depends on.

    Returns:
        tuple[str, ...]: Nodes ordered so every dependency precedes its dependents.

    Raises:
        InvalidPlanError: Raised when a dependency is unknown or the graph has a cycle.
    """

    unknown_references = sorted(
        f"{node} depends on unknown resource {dependency}"
        for node, node_dependencies in dependencies.items()
        for dependency in node_dependencies
        if dependency not in dependencies
    )
    if unknown_references:
        raise InvalidPlanError(unknown_references)

    remaining_in_degree = {node: len(set(node_dependencies)) for node, node_dependencies in dependencies.items()}
    dependents: dict[str, list[str]] = {node: [] for node in dependencies}
    for node, node_dependencies in dependencies.items():
        for dependency in set(node_dependencies):
            dependents[dependency].append(node)

    ready_heap = [node for node, in_degree in remaining_in_degree.items() if in_degree == 0]
    heapq.heapify(ready_heap)
    ordered: list[str] = []
    while ready_heap:
        node = heapq.heappop(ready_heap)
        ordered.append(node)
        for dependent in dependents[node]:
            remaining_in_degree[dependent] -= 1
            if remaining_in_degree[dependent] == 0:
                heapq.heappush(ready_heap, dependent)

    if len(ordered) != len(dependencies):
        cyclic_nodes = sorted(node for node, in_degree in remaining_in_degree.items() if in_degree > 0)
        raise InvalidPlanError([f"dependency cycle among: {', '.join(cyclic_nodes)}"])
    return tuple(ordered)
