# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

from typing import Any, Dict, Tuple, TYPE_CHECKING

import torch
from bayesgraph.exceptions import ConfigurationConflictError
from bayesgraph.inference.sampler_registry import register_sampler
from bayesgraph.inference.samplers.base_mh_sampler import BaseMHSampler
from bayesgraph.model.families import lower_bound
from bayesgraph.model.node import DTYPE, ValueType

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


def adaptation_factor(times_adapted: int) -> float:
    """Step of the diminishing adaptation schedule."""
    return 1.0 / (times_adapted + 3) ** 0.8


@register_sampler("RW", "random_walk")
class RandomWalkSampler(BaseMHSampler):
    """
    Adaptive random walk Metropolis-Hastings on a single continuous node. All
    elements of the node move together with an isotropic normal step.

    Every ``adapt_interval`` proposals the step size is multiplied by
    ``exp(10 * gamma * (acceptance - target))``, where ``acceptance`` is the rate
    observed over the interval and ``gamma`` decays with the number of
    adaptations. The target acceptance is 0.44 for scalar nodes and 0.234
    otherwise.

    Options:
        scale: Initial step size (1.0).
        log: Propose on the log scale, for nodes with positive support (False).
        adaptive: Adapt the step size (True).
    """

    kind = "RW"
    target_acc_rate = {False: 0.44, True: 0.234}

    def setup_sampler(
        self,
        graph: Graph,
        scale: float = 1.0,
        log: bool = False,
        adaptive: bool = True,
        **options,
    ) -> None:
        if len(self.targets) != 1:
            raise ConfigurationConflictError(
                f"{self.kind} sampler updates a single node; got {list(self.targets)}. "
                "Use RW_block for several nodes."
            )
        node = graph.get_node(self.targets[0])
        if node.value_type is ValueType.INTEGER:
            raise ConfigurationConflictError(
                f"{self.kind} sampler requires a continuous node; "
                f"'{node.name}' is discrete."
            )
        if log:
            params = graph.parameters(node.name)
            bound = lower_bound(node.family, params)
            if bound is None or bool(bound != 0):
                raise ConfigurationConflictError(
                    f"{self.kind} sampler on the log scale requires positive "
                    f"support; '{node.name}' has support "
                    f"{node.family.support(params)}."
                )
        self.initial_scale = float(scale)
        self.log_scale = log
        self.is_adaptive = adaptive
        self.target_rate = self.target_acc_rate[node.numel > 1]
        super().setup_sampler(graph, **options)

    def reset(self) -> None:
        super().reset()
        self.scale = self.initial_scale
        self.times_adapted = 0
        self._window_accepted = 0
        self._window_size = 0

    @property
    def adaptive(self) -> bool:
        return self.is_adaptive

    def propose(self, current: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        step = torch.randn(current.shape, dtype=DTYPE) * self.scale
        if not self.log_scale:
            return current + step, torch.zeros((), dtype=DTYPE)
        proposed = current * torch.exp(step)
        # g(x | x') / g(x' | x) for a multiplicative step is x' / x
        return proposed, step.sum()

    def do_adaptation(self, value: torch.Tensor, accepted: bool) -> None:
        if not self.is_adaptive:
            return
        self._window_size += 1
        self._window_accepted += int(accepted)
        if self._window_size < self.adapt_interval:
            return
        rate = self._window_accepted / self._window_size
        gamma = 10.0 * adaptation_factor(self.times_adapted)
        self.scale *= float(torch.exp(torch.tensor(gamma * (rate - self.target_rate))))
        self.times_adapted += 1
        self._window_accepted = 0
        self._window_size = 0

    def describe(self) -> Dict[str, Any]:
        desc: Dict[str, Any] = {"scale": round(self.scale, 6)}
        if self.log_scale:
            desc["log"] = True
        if not self.is_adaptive:
            desc["adaptive"] = False
        return desc
