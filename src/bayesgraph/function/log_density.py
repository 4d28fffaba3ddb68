# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

import logging
from typing import Callable, Optional, TYPE_CHECKING

import torch
from bayesgraph.function.jit_backend import jit_compile, JITBackend
from bayesgraph.function.kernel import external_inputs, GraphKernel
from bayesgraph.function.two_stage import TwoStageFunction
from bayesgraph.model.dependencies import NodeNames
from bayesgraph.model.node import DTYPE
from bayesgraph.model.utils import LogLevel

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


LOGGER = logging.getLogger("bayesgraph.graph")


class LogDensityFunction(TwoStageFunction):
    """
    The log density of a set of target nodes and everything that depends on
    them up to the first stochastic nodes: the quantity a Metropolis-Hastings
    step compares before and after a proposal.

    Example::

        f = LogDensityFunction(graph, ["x"])
        f()                   # current value
        f(torch.tensor([1.]))  # sets x = 1 first

    Args:
        graph: Graph the function is bound to.
        targets: Nodes whose values may be passed to the run stage.
        compiled: Evaluate through a ``GraphKernel`` instead of
            ``Graph.calculate``. Defaults to whether a JIT backend is selected.
        include_dependents: Include stochastic dependents of the targets.
    """

    def setup(
        self,
        graph: Graph,
        targets: NodeNames,
        compiled: Optional[bool] = None,
        include_dependents: bool = True,
    ) -> None:
        self.targets = list(graph.expand_node_names(targets))
        if include_dependents:
            nodes = graph.get_dependencies(
                self.targets, stop_at_stochastic=True, self_inclusive=True
            )
        else:
            nodes = self.targets
        self.nodes = list(graph.calculation_order(nodes))
        self.compiled = (
            self.jit_backend is not JITBackend.NONE if compiled is None else compiled
        )
        self.freeze_length(
            "values", sum(graph.get_node(n).numel for n in self.targets)
        )
        # every node read but not computed, which must hold a value in both modes
        self.external = external_inputs(graph, self.nodes, self.targets)
        self._kernel: Optional[GraphKernel] = None
        self._compiled_fn: Optional[Callable] = None
        if self.compiled:
            self._kernel = GraphKernel(graph, self.nodes, self.targets)
        LOGGER.log(
            LogLevel.DEBUG_GRAPH.value,
            f"Log density of {self.targets} evaluates {self.nodes}"
            + (f" (compiled, {self.jit_backend.value})" if self.compiled else ""),
        )

    def run(self, values: Optional[torch.Tensor] = None) -> torch.Tensor:
        if values is not None:
            values = torch.as_tensor(values, dtype=DTYPE).flatten()
            offset = 0
            for name in self.targets:
                node = self.graph.get_node(name)
                self.graph.set_value(
                    name, values[offset : offset + node.numel].reshape(node.shape)
                )
                offset += node.numel
        if not self.compiled:
            self.read(self.targets)
            self.read(self.external)
            return self.graph.calculate(self.nodes)
        return self._run_kernel()

    def _run_kernel(self) -> torch.Tensor:
        kernel = self._kernel
        target_vec = kernel.targets.to_vec(self.read(self.targets))
        external_vec = kernel.external.to_vec(self.read(self.external))
        if self._compiled_fn is None:
            self._compiled_fn = jit_compile(
                kernel.evaluate, self.jit_backend, (target_vec, external_vec)
            )
        outputs, log_probs = self._compiled_fn(target_vec, external_vec)
        for name, value in kernel.outputs.to_dict(outputs).items():
            self.graph.store(name, value=value)
        for name, log_prob in zip(kernel.stochastic, log_probs):
            self.graph.store(name, log_prob=log_prob)
        total = torch.zeros((), dtype=DTYPE)
        for log_prob in log_probs:
            total = total + log_prob
        return total
