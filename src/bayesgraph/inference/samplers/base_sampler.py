# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

import logging
from abc import ABCMeta, abstractmethod
from typing import Any, Dict, TYPE_CHECKING

from bayesgraph.exceptions import ConfigurationConflictError, DataNodeError
from bayesgraph.function.log_density import LogDensityFunction
from bayesgraph.function.two_stage import TwoStageFunction
from bayesgraph.model.dependencies import NodeNames

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


LOGGER = logging.getLogger("bayesgraph.sampler")


class BaseSampler(TwoStageFunction, metaclass=ABCMeta):
    """
    Updates a fixed set of target nodes once per call. During setup the sampler
    decides which nodes it reads and which log densities it must keep current;
    after a call, the values and cached log densities of every node it touched
    are consistent with each other. A call that raises ``RuntimeError`` first
    restores every node in ``calc_nodes`` to its state before the call.

    Samplers are created by ``MCMCConfiguration.add_sampler`` and called once per
    sweep by ``MCMC``.

    Args:
        graph: Graph the sampler updates.
        targets: Nodes (or array names) to update.
        **options: Kind-specific options.
    """

    kind: str = ""

    def setup(self, graph: Graph, targets: NodeNames, **options) -> None:
        self.targets = list(graph.expand_node_names(targets))
        data = [t for t in self.targets if graph.get_node(t).is_data]
        if data:
            raise DataNodeError(data)
        not_stochastic = [
            t for t in self.targets if not graph.get_node(t).is_stochastic
        ]
        if not_stochastic:
            raise ConfigurationConflictError(
                f"{self.kind} sampler targets must be stochastic; got "
                + ", ".join(not_stochastic)
            )
        self.log_density = LogDensityFunction(
            graph, self.targets, jit_backend=self.jit_backend
        )
        self.calc_nodes = list(self.log_density.nodes)
        self.adapt_interval = int(
            options.pop("adapt_interval", graph.options.adapt_interval)
        )
        self.setup_sampler(graph, **options)

    def setup_sampler(self, graph: Graph, **options) -> None:
        """Kind-specific setup; unknown options must raise."""
        if options:
            raise ConfigurationConflictError(
                f"{self.kind} sampler does not take option(s) {', '.join(options)}"
            )

    def __call__(self, *args, **kwargs):
        snapshot = self.graph.snapshot(self.calc_nodes)
        try:
            return super().__call__(*args, **kwargs)
        except RuntimeError:
            # an update that fails part way leaves no partial writes behind
            self.graph.restore(snapshot)
            raise

    @abstractmethod
    def run(self) -> None:
        raise NotImplementedError

    def reset(self) -> None:
        """Forget adaptation state, called at the start of every chain."""

    @property
    def adaptive(self) -> bool:
        return False

    def describe(self) -> Dict[str, Any]:
        """Options shown by ``MCMCConfiguration.print_samplers``."""
        return {}

    def __repr__(self) -> str:
        desc = ", ".join(f"{k}: {v}" for k, v in self.describe().items())
        targets = ", ".join(self.targets)
        return f"{self.kind} sampler: {targets}" + (f", {desc}" if desc else "")
