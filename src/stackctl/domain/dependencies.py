"""Service dependency ordering.

``depends_on`` edges form a DAG. Services are grouped into depths
(topological generations); every service in a depth only depends on
services in earlier depths. Within a depth, declaration order is kept.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import networkx as nx

from stackctl.domain.errors import DependencyCycleError, UnknownServiceError

if TYPE_CHECKING:
    from stackctl.domain.layers import MergedLayer

type _Graph = nx.DiGraph


def build_graph(layer: MergedLayer) -> _Graph:
    """Build a DiGraph with an edge ``dependency -> dependent``."""
    services = layer.services()
    g: _Graph = nx.DiGraph()
    for index, name in enumerate(services):
        g.add_node(name, order=index)
    for name in services:
        for dep in layer.dependencies(name):
            if dep not in g:
                raise UnknownServiceError(
                    f"Service {name!r} depends on unknown service {dep!r}",
                    service=name,
                    dependency=dep,
                )
            g.add_edge(dep, name)
    return g


def start_levels(layer: MergedLayer) -> list[list[str]]:
    """Return services grouped by dependency depth, shallowest first."""
    g = build_graph(layer)
    try:
        cycle = nx.find_cycle(g)
    except nx.NetworkXNoCycle:
        cycle = None
    if cycle:
        path = " -> ".join([edge[0] for edge in cycle] + [cycle[0][0]])
        raise DependencyCycleError(f"Dependency cycle: {path}", cycle=[e[0] for e in cycle])

    return [
        sorted(generation, key=lambda n: g.nodes[n]["order"])
        for generation in nx.topological_generations(g)
    ]


def stop_levels(layer: MergedLayer) -> list[list[str]]:
    """Dependents first: the reverse of :func:`start_levels`."""
    return [list(reversed(level)) for level in reversed(start_levels(layer))]

