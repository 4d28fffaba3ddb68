# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

import math
import warnings
from typing import Any, Dict, TYPE_CHECKING

import torch
from bayesgraph.exceptions import ConfigurationConflictError
from bayesgraph.inference.sampler_registry import register_sampler
from bayesgraph.inference.samplers.base_sampler import BaseSampler
from bayesgraph.inference.samplers.random_walk import adaptation_factor
from bayesgraph.model.node import DTYPE, ValueType

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


@register_sampler("slice")
class SliceSampler(BaseSampler):
    """
    Univariate slice sampling with stepping out and shrinkage (Neal, 2003),
    applied to each element of the target node in turn.

    Discrete nodes are sampled through a continuous auxiliary variable ``u``
    with ``x = floor(u)``, so the same update covers integer supports.

    The interval width adapts towards twice the mean jump observed over each
    adaptation interval.

    Options:
        width: Initial interval width (1.0).
        max_steps: Maximum number of stepping-out steps (100).
        adaptive: Adapt the width (True).
    """

    kind = "slice"
    max_shrink = 200

    def setup_sampler(
        self,
        graph: Graph,
        width: float = 1.0,
        max_steps: int = 100,
        adaptive: bool = True,
        **options,
    ) -> None:
        if len(self.targets) != 1:
            raise ConfigurationConflictError(
                f"{self.kind} sampler updates a single node; got {list(self.targets)}."
            )
        node = graph.get_node(self.targets[0])
        if node.family.event_dim:
            raise ConfigurationConflictError(
                f"{self.kind} sampler cannot update the multivariate node "
                f"'{node.name}'."
            )
        self.discrete = node.value_type is ValueType.INTEGER
        self.initial_width = float(width)
        self.max_steps = int(max_steps)
        self.is_adaptive = adaptive
        self.num_elements = node.numel
        super().setup_sampler(graph, **options)
        self.reset()

    def reset(self) -> None:
        self.width = self.initial_width
        self.times_adapted = 0
        self._jump_sum = 0.0
        self._window_size = 0

    @property
    def adaptive(self) -> bool:
        return self.is_adaptive

    def _log_density(self, value: torch.Tensor, i: int, u: float) -> float:
        x = math.floor(u) if self.discrete else u
        proposed = value.clone()
        proposed[i] = x
        return float(self.log_density(proposed))

    def run(self) -> None:
        for i in range(self.num_elements):
            self._update_element(i)

    def _update_element(self, i: int) -> None:
        value = self.graph[self.targets[0]].flatten()
        current_log_prob = float(self.graph.get_log_prob(self.calc_nodes))
        if not math.isfinite(current_log_prob):
            return
        snapshot = self.graph.snapshot(self.calc_nodes)
        x0 = float(value[i])
        u0 = x0 + float(torch.rand((), dtype=DTYPE)) if self.discrete else x0

        log_y = current_log_prob - float(torch.empty((), dtype=DTYPE).exponential_())
        left = u0 - self.width * float(torch.rand((), dtype=DTYPE))
        right = left + self.width
        j = int(self.max_steps * float(torch.rand((), dtype=DTYPE)))
        k = self.max_steps - 1 - j
        while j > 0 and self._log_density(value, i, left) > log_y:
            left -= self.width
            j -= 1
        while k > 0 and self._log_density(value, i, right) > log_y:
            right += self.width
            k -= 1

        for _ in range(self.max_shrink):
            u1 = left + float(torch.rand((), dtype=DTYPE)) * (right - left)
            if self._log_density(value, i, u1) > log_y:
                break
            if u1 < u0:
                left = u1
            else:
                right = u1
        else:
            # the last evaluated state is not the one kept
            warnings.warn(
                f"{self.kind} sampler on '{self.targets[0]}' failed to find a point "
                "in the slice; keeping the current value.",
                RuntimeWarning,
            )
            self.graph.restore(snapshot)
            return
        self._adapt(abs(u1 - u0))

    def _adapt(self, jump: float) -> None:
        if not self.is_adaptive:
            return
        self._jump_sum += jump
        self._window_size += 1
        if self._window_size < self.adapt_interval:
            return
        mean_jump = self._jump_sum / self._window_size
        gamma = adaptation_factor(self.times_adapted)
        if mean_jump > 0:
            self.width += (2 * mean_jump - self.width) * gamma
        self.times_adapted += 1
        self._jump_sum = 0.0
        self._window_size = 0

    def describe(self) -> Dict[str, Any]:
        return {"width": round(self.width, 6)}
