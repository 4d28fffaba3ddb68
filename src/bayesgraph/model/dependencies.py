# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Set, Tuple, TYPE_CHECKING, Union

from bayesgraph.exceptions import CyclicGraphError
from bayesgraph.model.utils import LogLevel

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph
    from bayesgraph.model.node import Node


LOGGER = logging.getLogger("bayesgraph.graph")

NodeNames = Union[str, Iterable[str]]


class DependencyResolver:
    """
    Computes forward (children) and backward (parents) reachability over a
    graph. Results are ordered by declaration index, which is a topological
    order, so two calls with the same arguments on the same topology always
    return the same tuple. Results are cached until the topology changes.

    Args:
        graph: The graph to resolve dependencies in.
    """

    def __init__(self, graph: Graph):
        self._graph = graph
        self._cache: Dict[Tuple, Tuple[str, ...]] = {}
        self._cache_version = graph.topology_version

    def get_dependencies(
        self,
        names: NodeNames,
        downstream: bool = True,
        stochastic_only: bool = False,
        deterministic_only: bool = False,
        self_inclusive: bool = False,
        immediate_only: bool = False,
        stop_at_stochastic: bool = False,
        include_data: bool = True,
    ) -> Tuple[str, ...]:
        """
        Args:
            names: Node names (or array names, expanded to their elements) to
                start the traversal from.
            downstream: Follow edges towards children if True, towards parents
                otherwise.
            stochastic_only: Keep only stochastic nodes in the result.
            deterministic_only: Keep only deterministic nodes in the result.
            self_inclusive: Keep the query nodes themselves in the result.
            immediate_only: Only follow one generation of edges.
            stop_at_stochastic: Do not traverse past stochastic nodes; they are
                included but their own dependencies are not.
            include_data: Keep data nodes in the result.

        Returns:
            Names of the reachable nodes in topological order.
        """
        query = self._graph.expand_node_names(names)
        key = (
            query,
            downstream,
            stochastic_only,
            deterministic_only,
            self_inclusive,
            immediate_only,
            stop_at_stochastic,
            include_data,
        )
        if self._cache_version != self._graph.topology_version:
            self._cache.clear()
            self._cache_version = self._graph.topology_version
        if key in self._cache:
            return self._cache[key]

        reached = self._traverse(query, downstream, immediate_only, stop_at_stochastic)
        if self_inclusive:
            reached.update(query)
        else:
            reached.difference_update(query)

        nodes = [self._graph.get_node(name) for name in reached]
        if stochastic_only:
            nodes = [n for n in nodes if n.is_stochastic]
        if deterministic_only:
            nodes = [n for n in nodes if n.is_deterministic]
        if not include_data:
            nodes = [n for n in nodes if not n.is_data]
        result = tuple(n.name for n in sorted(nodes, key=lambda n: n.index))

        LOGGER.log(
            LogLevel.DEBUG_GRAPH.value,
            "Dependencies of {q} ({d}): {r}".format(
                q=list(query), d="down" if downstream else "up", r=list(result)
            ),
        )
        self._cache[key] = result
        return result

    def topological_order(self, names: Iterable[str]) -> Tuple[str, ...]:
        """Sort ``names`` by declaration index, dropping duplicates."""
        nodes = {name: self._graph.get_node(name) for name in names}
        return tuple(sorted(nodes, key=lambda name: nodes[name].index))

    def _traverse(
        self,
        query: Tuple[str, ...],
        downstream: bool,
        immediate_only: bool,
        stop_at_stochastic: bool,
    ) -> Set[str]:
        reached: Set[str] = set()
        frontier: List[str] = list(query)
        while frontier:
            node = self._graph.get_node(frontier.pop())
            neighbours = node.children if downstream else node.parents
            for name in neighbours:
                neighbour = self._graph.get_node(name)
                self._check_edge(node, neighbour, downstream)
                if name in reached:
                    continue
                reached.add(name)
                if immediate_only or (stop_at_stochastic and neighbour.is_stochastic):
                    continue
                frontier.append(name)
        return reached

    @staticmethod
    def _check_edge(node: Node, neighbour: Node, downstream: bool) -> None:
        # parents are always declared before their children; an edge that goes
        # the other way can only come from a cycle
        forward = (
            neighbour.index > node.index if downstream else neighbour.index < node.index
        )
        if not forward:
            raise CyclicGraphError([node.name, neighbour.name])
