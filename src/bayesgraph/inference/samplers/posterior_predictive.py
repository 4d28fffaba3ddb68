# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

from typing import TYPE_CHECKING

from bayesgraph.exceptions import ConfigurationConflictError
from bayesgraph.inference.sampler_registry import register_sampler
from bayesgraph.inference.samplers.base_sampler import BaseSampler

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


def has_data_downstream(graph: Graph, name: str) -> bool:
    return any(
        graph.get_node(n).is_data
        for n in graph.get_dependencies(name, stochastic_only=True)
    )


@register_sampler("posterior_predictive", "prior")
class PosteriorPredictiveSampler(BaseSampler):
    """
    Draws the targets from their distributions given the current parent
    values, then redraws every stochastic node downstream of them the same
    way. With no data downstream this is an exact joint draw of the targets
    and their dependents from the prior given the rest of the graph, whatever
    samplers the dependents also have and in whatever order they run.
    """

    kind = "posterior_predictive"

    def setup_sampler(self, graph: Graph, **options) -> None:
        observed = [t for t in self.targets if has_data_downstream(graph, t)]
        if observed:
            raise ConfigurationConflictError(
                f"{self.kind} sampler requires nodes with no data downstream; "
                + ", ".join(observed)
                + " have data downstream."
            )
        super().setup_sampler(graph, **options)
        self.calc_nodes = list(
            graph.get_dependencies(self.targets, self_inclusive=True)
        )

    def run(self) -> None:
        self.graph.simulate(self.calc_nodes)
        self.graph.calculate(self.calc_nodes)
