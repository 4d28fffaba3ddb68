# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Exact Gibbs updates for conjugate prior / likelihood pairs. A node qualifies
when every node depending on it is stochastic, of the matching likelihood
family, and uses the node directly as the conjugate parameter and nowhere
else.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple, TYPE_CHECKING

import torch
import torch.distributions as dist
from bayesgraph.exceptions import ConfigurationConflictError
from bayesgraph.inference.sampler_registry import register_sampler
from bayesgraph.inference.samplers.base_sampler import BaseSampler
from bayesgraph.model.node import DTYPE

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


# prior family -> (sampler kind, {likelihood family: conjugate parameter})
CONJUGATE_PAIRS: Dict[str, Tuple[str, Dict[str, str]]] = {
    "normal": ("conjugate_normal", {"normal": "loc"}),
    "beta": ("conjugate_beta", {"bernoulli": "probs", "binomial": "probs"}),
}


def conjugate_kind(graph: Graph, name: str) -> Optional[str]:
    """The conjugate sampler kind able to update ``name``, if any."""
    node = graph.get_node(name)
    if not node.is_stochastic or node.family.name not in CONJUGATE_PAIRS:
        return None
    kind, likelihoods = CONJUGATE_PAIRS[node.family.name]
    dependents = graph.get_dependencies(name, immediate_only=True)
    if not dependents:
        return None
    for child in dependents:
        child_node = graph.get_node(child)
        if not child_node.is_stochastic or child_node.family.name not in likelihoods:
            return None
        param = likelihoods[child_node.family.name]
        uses = [p for p, bound in graph.bindings(child).items() if bound == name]
        if uses != [param]:
            return None
        if node.shape != torch.Size([]) and child_node.shape != node.shape:
            return None
    return kind


class _ConjugateSampler(BaseSampler):
    def setup_sampler(self, graph: Graph, **options) -> None:
        if (
            len(self.targets) != 1
            or conjugate_kind(graph, self.targets[0]) != self.kind
        ):
            raise ConfigurationConflictError(
                f"{self.kind} sampler requires a single node in a conjugate "
                f"relationship; got {list(self.targets)}."
            )
        self.target = self.targets[0]
        self.dependents = list(graph.get_dependencies(self.target, immediate_only=True))
        super().setup_sampler(graph, **options)

    def _reduce(self, x: torch.Tensor) -> torch.Tensor:
        """Sum child contributions down to the target's shape."""
        if self.graph.get_node(self.target).shape == torch.Size([]):
            return x.sum()
        return x

    def run(self) -> None:
        posterior = self.posterior()
        value = posterior.sample().to(DTYPE)
        self.log_density(value.flatten())

    def posterior(self) -> dist.Distribution:
        raise NotImplementedError


@register_sampler("conjugate_normal")
class NormalConjugateSampler(_ConjugateSampler):
    """Normal prior on the mean of normal likelihoods with known scales."""

    kind = "conjugate_normal"

    def posterior(self) -> dist.Distribution:
        prior = self.graph.parameters(self.target)
        precision = prior["scale"].pow(-2)
        weighted = prior["loc"] * precision
        for child in self.dependents:
            y = self.graph[child]
            child_precision = torch.broadcast_to(
                self.graph.parameters(child)["scale"].pow(-2), y.shape
            )
            precision = precision + self._reduce(child_precision)
            weighted = weighted + self._reduce(y * child_precision)
        return dist.Normal(weighted / precision, precision.rsqrt())


@register_sampler("conjugate_beta")
class BetaConjugateSampler(_ConjugateSampler):
    """Beta prior on the success probability of Bernoulli or binomial
    likelihoods."""

    kind = "conjugate_beta"

    def posterior(self) -> dist.Distribution:
        prior = self.graph.parameters(self.target)
        alpha = prior["concentration1"]
        beta = prior["concentration0"]
        for child in self.dependents:
            y = self.graph[child]
            params = self.graph.parameters(child)
            trials = params.get("total_count", torch.ones((), dtype=DTYPE))
            trials = torch.broadcast_to(trials, y.shape)
            alpha = alpha + self._reduce(y)
            beta = beta + self._reduce(trials - y)
        return dist.Beta(alpha, beta)
