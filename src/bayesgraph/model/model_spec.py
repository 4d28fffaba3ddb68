# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Builds a ``Graph`` from a declarative list of nodes, the interface a modelling
language front-end produces. Unlike ``Graph.declare_node``, declarations may
appear in any order; they are sorted so that parents come first.
"""

import dataclasses
import heapq
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from bayesgraph.config import Options
from bayesgraph.exceptions import (
    ConstructionError,
    CyclicGraphError,
    DuplicateNodeError,
    UnknownNodeError,
)
from bayesgraph.model.graph import Graph
from bayesgraph.model.node import (
    Constant,
    Definition,
    kind_of,
    Stochastic,
    ValueType,
)
from bayesgraph.model.utils import LogLevel


LOGGER = logging.getLogger("bayesgraph.graph")


@dataclasses.dataclass(frozen=True)
class NodeDeclaration:
    """
    One node of a declarative model.

    Args:
        name: Node name.
        definition: ``Stochastic``, ``Deterministic`` or ``Constant``.
        dims: Optional declared shape.
        value_type: Optional value type.
        optional: Whether the node is a term that can be left out of the model.
        fallback: Value of the node when it is left out through ``omit``.
    """

    name: str
    definition: Definition
    dims: Optional[Sequence[int]] = None
    value_type: Optional[ValueType] = None
    optional: bool = False
    fallback: Any = 0.0

    @property
    def parents(self) -> Sequence[str]:
        if isinstance(self.definition, Constant):
            return ()
        return self.definition.parents


def build_graph(
    declarations: Iterable[NodeDeclaration],
    constants: Optional[Mapping[str, Any]] = None,
    data: Optional[Mapping[str, Any]] = None,
    inits: Optional[Mapping[str, Any]] = None,
    omit: Iterable[str] = (),
    options: Optional[Options] = None,
) -> Graph:
    """
    Declare every node of a model in a new graph.

    Args:
        declarations: The model's nodes, in any order.
        constants: Values of names referenced but not declared; each becomes a
            constant node.
        data: Values of observed stochastic nodes, which are flagged as data.
        inits: Initial values of latent nodes.
        omit: Optional declarations to leave out. Each one is replaced by a
            constant node holding its ``fallback``, so the nodes it depended on
            are no longer connected through it.
        options: Options of the returned graph.

    Returns:
        The constructed graph, with data assigned and ``inits`` applied.
    """
    constants = dict(constants or {})
    omit = set(omit)

    declared: Dict[str, NodeDeclaration] = {}
    for decl in declarations:
        if decl.name in declared:
            raise DuplicateNodeError(decl.name)
        if decl.name in omit:
            if not decl.optional:
                raise ConstructionError(
                    f"Node '{decl.name}' is not optional and cannot be omitted."
                )
            decl = dataclasses.replace(
                decl, definition=Constant(decl.fallback), dims=None, value_type=None
            )
            LOGGER.log(
                LogLevel.DEBUG_GRAPH.value,
                f"Omitting optional node {decl.name}, fixed to {decl.fallback}",
            )
        declared[decl.name] = decl
    unknown_omits = omit - set(declared)
    if unknown_omits:
        raise UnknownNodeError(sorted(unknown_omits)[0])

    # constants come first, so ties are broken in favour of them
    decls = [
        NodeDeclaration(name, Constant(value))
        for name, value in constants.items()
        if name not in declared
    ]
    decls.extend(declared.values())

    graph = Graph(options)
    for decl in _sort_declarations(decls):
        graph.declare_node(
            decl.name,
            kind_of(decl.definition),
            dims=decl.dims,
            definition=decl.definition,
            value_type=decl.value_type,
        )

    if data:
        observed = [name for name in data if name in graph]
        if len(observed) != len(data):
            missing = [name for name in data if name not in graph][0]
            raise UnknownNodeError(missing)
        graph.mark_as_data(observed, data)
    if inits:
        graph.set_values(inits)
    return graph


def _sort_declarations(decls: List[NodeDeclaration]) -> List[NodeDeclaration]:
    """Kahn's algorithm, breaking ties by declaration position."""
    position = {decl.name: i for i, decl in enumerate(decls)}
    pending: Dict[str, int] = {}
    children: Dict[str, List[str]] = {decl.name: [] for decl in decls}
    for decl in decls:
        parents = set(decl.parents)
        for parent in parents:
            if parent not in position:
                raise UnknownNodeError(parent, referenced_by=decl.name)
            children[parent].append(decl.name)
        pending[decl.name] = len(parents)

    ready = [position[name] for name, count in pending.items() if count == 0]
    heapq.heapify(ready)
    ordered: List[NodeDeclaration] = []
    while ready:
        decl = decls[heapq.heappop(ready)]
        ordered.append(decl)
        for child in children[decl.name]:
            pending[child] -= 1
            if pending[child] == 0:
                heapq.heappush(ready, position[child])

    if len(ordered) != len(decls):
        done = {decl.name for decl in ordered}
        raise CyclicGraphError(d.name for d in decls if d.name not in done)
    return ordered


def stochastic(name: str, family: str, dims=None, **params) -> NodeDeclaration:
    """Shorthand for a stochastic ``NodeDeclaration``."""
    return NodeDeclaration(name, Stochastic(family, **params), dims=dims)

