# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple, TYPE_CHECKING

import torch
from bayesgraph.exceptions import ConfigurationConflictError
from bayesgraph.inference.sampler_registry import register_sampler
from bayesgraph.inference.samplers.base_mh_sampler import BaseMHSampler
from bayesgraph.inference.samplers.random_walk import adaptation_factor
from bayesgraph.model.node import DTYPE, ValueType

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


@register_sampler("RW_block", "block_random_walk")
class BlockRandomWalkSampler(BaseMHSampler):
    """
    Adaptive multivariate normal random walk over the concatenated elements of
    one or more continuous nodes. The proposal is
    ``x' = x + scale * L z`` with ``L L^T = prop_cov`` and ``z`` standard normal.

    At every adaptation both the scale and the proposal covariance move: the
    scale towards an acceptance rate of 0.234 (0.44 for a single element) and
    the covariance towards the empirical covariance of the states visited
    during the interval.

    Options:
        scale: Initial scale (1.0).
        prop_cov: Initial proposal covariance, identity by default.
        adaptive: Adapt the scale and covariance (True).
        adapt_scale_only: Keep the proposal covariance fixed (False).
    """

    kind = "RW_block"

    def setup_sampler(
        self,
        graph: Graph,
        scale: float = 1.0,
        prop_cov: Optional[torch.Tensor] = None,
        adaptive: bool = True,
        adapt_scale_only: bool = False,
        **options,
    ) -> None:
        discrete = [
            t for t in self.targets if graph.get_node(t).value_type is ValueType.INTEGER
        ]
        if discrete:
            raise ConfigurationConflictError(
                f"{self.kind} sampler requires continuous nodes; "
                + ", ".join(discrete)
                + " are discrete."
            )
        self.dim = sum(graph.get_node(t).numel for t in self.targets)
        if prop_cov is None:
            prop_cov = torch.eye(self.dim, dtype=DTYPE)
        prop_cov = torch.as_tensor(prop_cov, dtype=DTYPE)
        if prop_cov.shape != (self.dim, self.dim):
            raise ConfigurationConflictError(
                f"{self.kind} sampler: prop_cov must be {self.dim}x{self.dim}, "
                f"got {tuple(prop_cov.shape)}."
            )
        self.initial_scale = float(scale)
        self.initial_prop_cov = prop_cov
        self.is_adaptive = adaptive
        self.adapt_scale_only = adapt_scale_only
        self.target_rate = 0.44 if self.dim == 1 else 0.234
        super().setup_sampler(graph, **options)

    def reset(self) -> None:
        super().reset()
        self.scale = self.initial_scale
        self.prop_cov = self.initial_prop_cov.clone()
        self._chol = torch.linalg.cholesky(self.prop_cov)
        self.times_adapted = 0
        self._window_accepted = 0
        self._window_size = 0
        self._history = torch.zeros(self.adapt_interval, self.dim, dtype=DTYPE)

    @property
    def adaptive(self) -> bool:
        return self.is_adaptive

    def propose(self, current: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        z = torch.randn(self.dim, dtype=DTYPE)
        return current + self.scale * (self._chol @ z), torch.zeros((), dtype=DTYPE)

    def do_adaptation(self, value: torch.Tensor, accepted: bool) -> None:
        if not self.is_adaptive:
            return
        self._history[self._window_size] = value
        self._window_size += 1
        self._window_accepted += int(accepted)
        if self._window_size < self.adapt_interval:
            return

        rate = self._window_accepted / self._window_size
        gamma = adaptation_factor(self.times_adapted)
        self.scale *= float(
            torch.exp(torch.tensor(10.0 * gamma * (rate - self.target_rate)))
        )
        if not self.adapt_scale_only and self._window_accepted > 0:
            empirical = torch.atleast_2d(torch.cov(self._history.T))
            prop_cov = self.prop_cov + gamma * (empirical - self.prop_cov)
            chol, info = torch.linalg.cholesky_ex(prop_cov)
            # keep the previous covariance if the update lost positive definiteness
            if int(info) == 0:
                self.prop_cov = prop_cov
                self._chol = chol
        self.times_adapted += 1
        self._window_accepted = 0
        self._window_size = 0

    def describe(self) -> Dict[str, Any]:
        return {"scale": round(self.scale, 6), "dim": self.dim}
