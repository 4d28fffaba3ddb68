# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from bayesgraph.config import Options
from bayesgraph.exceptions import (
    ConfigurationConflictError,
    ConflictError,
    DataNodeError,
    UnsampledNodeError,
)
from bayesgraph.function.jit_backend import JITBackend
from bayesgraph.inference.sampler_registry import get_sampler_kind
from bayesgraph.inference.samplers.base_sampler import BaseSampler
from bayesgraph.inference.samplers.conjugate import conjugate_kind
from bayesgraph.inference.samplers.posterior_predictive import has_data_downstream
from bayesgraph.model.dependencies import NodeNames
from bayesgraph.model.families import has_finite_support, is_binary
from bayesgraph.model.node import ValueType
from bayesgraph.model.utils import LogLevel

if TYPE_CHECKING:
    from bayesgraph.inference.mcmc import MCMC
    from bayesgraph.model.graph import Graph


LOGGER = logging.getLogger("bayesgraph.inference")


@dataclasses.dataclass(frozen=True)
class SamplerAssignment:
    """A sampler kind bound to target nodes, from which a sampler instance is
    built for every chain."""

    targets: Tuple[str, ...]
    kind: str
    options: Dict[str, Any] = dataclasses.field(default_factory=dict)

    def build(
        self, graph: Graph, jit_backend: Optional[JITBackend] = None
    ) -> BaseSampler:
        return get_sampler_kind(self.kind)(
            graph, self.targets, jit_backend=jit_backend, **self.options
        )


class MCMCConfiguration:
    """
    Decides which sampler updates which node, in which order, and which nodes
    are recorded.

    Example::

        conf = MCMCConfiguration(graph)
        conf.remove_samplers("x")
        conf.add_sampler("x", "RW", log=True)
        samples = conf.build().run(niter=1000, burnin=100)

    Args:
        graph: The model graph; data must be marked before configuring.
        nodes: Nodes to configure samplers for; all latent nodes by default.
        monitors: Nodes to record; all latent nodes by default.
        options: Overrides the graph's options.
        defaults: Assign default samplers with ``configure_defaults``.
    """

    def __init__(
        self,
        graph: Graph,
        nodes: Optional[NodeNames] = None,
        monitors: Optional[NodeNames] = None,
        options: Optional[Options] = None,
        defaults: bool = True,
    ):
        self.graph = graph
        self.options = options or graph.options
        if nodes is None:
            self.nodes = graph.latent_nodes
        else:
            expanded = graph.expand_node_names(nodes)
            data = [n for n in expanded if graph.get_node(n).is_data]
            if data:
                raise DataNodeError(data)
            self.nodes = tuple(n for n in expanded if graph.get_node(n).is_stochastic)
        self._assignments: List[SamplerAssignment] = []
        self._samplers: List[BaseSampler] = []
        self._order: Optional[List[int]] = None
        self._monitors: List[str] = []
        self.set_monitors(graph.latent_nodes if monitors is None else monitors)
        if defaults:
            self.configure_defaults()

    # samplers ================================================================

    def default_kind(self, name: str) -> Tuple[str, Dict[str, Any]]:
        """The sampler kind ``configure_defaults`` assigns to ``name``."""
        graph = self.graph
        node = graph.get_node(name)
        if self.options.use_posterior_predictive and not has_data_downstream(
            graph, name
        ):
            return "posterior_predictive", {}
        if self.options.use_conjugacy:
            kind = conjugate_kind(graph, name)
            if kind is not None:
                return kind, {}
        if node.value_type is ValueType.INTEGER:
            if is_binary(node.family, graph.parameters(name)):
                return "binary", {}
            if has_finite_support(node.family):
                return "categorical", {}
            return "slice", {}
        if node.numel > 1 and self.options.block_multivariate:
            return "RW_block", {}
        return "RW", {}

    def configure_defaults(self) -> None:
        """Assign a sampler to every configured node without one, visiting
        nodes in topological order."""
        assigned = self._assigned_nodes()
        for name in self.graph.topological_order(self.nodes):
            if name in assigned:
                continue
            kind, options = self.default_kind(name)
            self.add_sampler(name, kind, **options)

    def add_sampler(self, targets: NodeNames, kind: str, **options) -> BaseSampler:
        """
        Assign a sampler of ``kind`` to ``targets`` and append it to the
        execution order.

        Raises:
            DataNodeError: A target is data.
            UnknownSamplerKindError: ``kind`` is not registered.
            ConflictError: A target already has a sampler.
        """
        targets = self.graph.expand_node_names(targets)
        data = [t for t in targets if self.graph.get_node(t).is_data]
        if data:
            raise DataNodeError(data)
        get_sampler_kind(kind)
        assigned = self._assigned_nodes()
        overlap = [t for t in targets if t in assigned]
        if overlap:
            raise ConflictError(targets, overlap)

        assignment = SamplerAssignment(tuple(targets), kind, dict(options))
        sampler = assignment.build(self.graph, self.options.jit_backend)
        self._assignments.append(assignment)
        self._samplers.append(sampler)
        if self._order is not None:
            self._order.append(len(self._samplers) - 1)
        LOGGER.log(LogLevel.DEBUG_SAMPLER.value, f"Assigned {sampler!r}")
        return sampler

    def remove_samplers(self, *targets: NodeNames) -> None:
        """
        Remove every sampler updating any of ``targets``; all samplers if none
        are given. Removing samplers that do not exist is not an error.
        """
        if targets:
            names = set()
            for t in targets:
                names.update(self.graph.expand_node_names(t))
            keep = [
                i
                for i, a in enumerate(self._assignments)
                if not names.intersection(a.targets)
            ]
        else:
            keep = []
        if len(keep) == len(self._assignments):
            return
        remap = {old: new for new, old in enumerate(keep)}
        self._assignments = [self._assignments[i] for i in keep]
        self._samplers = [self._samplers[i] for i in keep]
        if self._order is not None:
            self._order = [remap[i] for i in self._order if i in remap]

    def get_samplers(self, nodes: Optional[NodeNames] = None) -> List[BaseSampler]:
        """Samplers in execution order, restricted to those updating ``nodes``."""
        samplers = [self._samplers[i] for i in self.execution_order]
        if nodes is None:
            return samplers
        names = set(self.graph.expand_node_names(nodes))
        return [s for s in samplers if names.intersection(s.targets)]

    @property
    def assignments(self) -> Tuple[SamplerAssignment, ...]:
        return tuple(self._assignments)

    def print_samplers(self, nodes: Optional[NodeNames] = None) -> str:
        lines = [
            f"[{i}] {sampler!r}" for i, sampler in enumerate(self.get_samplers(nodes))
        ]
        text = "\n".join(lines)
        print(text)
        return text

    @property
    def execution_order(self) -> Tuple[int, ...]:
        if self._order is None:
            return tuple(range(len(self._samplers)))
        return tuple(self._order)

    def set_execution_order(self, order: Sequence[int]) -> None:
        """
        Set the sequence of samplers run in one sweep, as indices into the
        assignment list. Indices may repeat; a sampler left out does not run.
        """
        order = [int(i) for i in order]
        invalid = [i for i in order if not 0 <= i < len(self._samplers)]
        if invalid:
            raise ConfigurationConflictError(
                f"Execution order refers to unknown sampler(s) {invalid}; "
                f"{len(self._samplers)} samplers are assigned."
            )
        self._order = order

    def _assigned_nodes(self) -> Dict[str, int]:
        return {t: i for i, a in enumerate(self._assignments) for t in a.targets}

    def unsampled_nodes(self) -> Tuple[str, ...]:
        """Configured nodes that no sampler in the execution order updates."""
        scheduled = {
            t for i in set(self.execution_order) for t in self._assignments[i].targets
        }
        return tuple(n for n in self.nodes if n not in scheduled)

    # monitors ================================================================

    @property
    def monitors(self) -> Tuple[str, ...]:
        return tuple(self._monitors)

    def set_monitors(self, names: NodeNames) -> None:
        self._monitors = list(self.graph.expand_node_names(names)) if names else []

    def add_monitors(self, names: NodeNames) -> None:
        for name in self.graph.expand_node_names(names):
            if name not in self._monitors:
                self._monitors.append(name)

    # build ===================================================================

    def build(self) -> MCMC:
        """
        Returns:
            An ``MCMC`` object running the configured samplers.

        Raises:
            UnsampledNodeError: A configured node has no sampler.
        """
        from bayesgraph.inference.mcmc import MCMC

        unsampled = self.unsampled_nodes()
        if unsampled:
            raise UnsampledNodeError(unsampled)
        return MCMC(
            self.graph,
            self.assignments,
            self.execution_order,
            self.monitors,
            self.options,
        )

    def __repr__(self) -> str:
        return (
            f"MCMCConfiguration({len(self._samplers)} samplers, "
            f"{len(self._monitors)} monitors)"
        )
