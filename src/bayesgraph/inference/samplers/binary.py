# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

from typing import Sequence, TYPE_CHECKING

import torch
from bayesgraph.exceptions import ConfigurationConflictError
from bayesgraph.inference.sampler_registry import register_sampler
from bayesgraph.inference.samplers.base_sampler import BaseSampler, LOGGER
from bayesgraph.model.families import is_binary
from bayesgraph.model.node import DTYPE
from bayesgraph.model.utils import LogLevel

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


class _EnumerationSampler(BaseSampler):
    """
    Exact Gibbs update of each element of a discrete node over a finite
    support: the full conditional is evaluated at every support point and a new
    value drawn from it.
    """

    def support_points(self, graph: Graph) -> Sequence[float]:
        raise NotImplementedError

    def setup_sampler(self, graph: Graph, **options) -> None:
        if len(self.targets) != 1:
            raise ConfigurationConflictError(
                f"{self.kind} sampler updates a single node; got {list(self.targets)}."
            )
        self.support = torch.tensor(self.support_points(graph), dtype=DTYPE)
        self.num_elements = graph.get_node(self.targets[0]).numel
        super().setup_sampler(graph, **options)

    def run(self) -> None:
        for i in range(self.num_elements):
            self._update_element(i)

    def _update_element(self, i: int) -> None:
        snapshot = self.graph.snapshot(self.calc_nodes)
        value = self.graph[self.targets[0]].flatten()
        log_probs = torch.empty(len(self.support), dtype=DTYPE)
        for k, point in enumerate(self.support):
            proposed = value.clone()
            proposed[i] = point
            log_probs[k] = self.log_density(proposed)
        log_probs = torch.nan_to_num(log_probs, nan=float("-inf"))
        if not bool(torch.isfinite(log_probs).any()):
            self.graph.restore(snapshot)
            LOGGER.log(
                LogLevel.DEBUG_UPDATES.value,
                f"{self.kind} {self.targets[0]}[{i}]: no support point has positive "
                "density, keeping the current value",
            )
            return
        k = int(torch.multinomial(torch.softmax(log_probs, dim=0), 1))
        if k != len(self.support) - 1:
            proposed = value.clone()
            proposed[i] = self.support[k]
            self.log_density(proposed)


@register_sampler("binary")
class BinaryGibbsSampler(_EnumerationSampler):
    """Exact Gibbs update on {0, 1} for Bernoulli and single-trial binomial
    nodes."""

    kind = "binary"

    def support_points(self, graph: Graph) -> Sequence[float]:
        node = graph.get_node(self.targets[0])
        params = graph.parameters(node.name)
        if node.family is None or not is_binary(node.family, params):
            found = node.family.name if node.family else node.kind.value
            raise ConfigurationConflictError(
                f"{self.kind} sampler requires a Bernoulli node; "
                f"'{node.name}' is {found}."
            )
        return [0.0, 1.0]

