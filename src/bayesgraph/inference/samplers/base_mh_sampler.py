# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

from abc import abstractmethod
from typing import Tuple, TYPE_CHECKING

import torch
from bayesgraph.inference.samplers.base_sampler import BaseSampler, LOGGER
from bayesgraph.model.node import DTYPE
from bayesgraph.model.utils import LogLevel

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


class BaseMHSampler(BaseSampler):
    """
    Metropolis-Hastings update of the targets. Subclasses override ``propose``
    to return a new flattened value of the targets together with the log
    Hastings correction ``log g(x | x') - log g(x' | x)``.

    A proposal is accepted with probability
    ``min(1, exp(log p(x') - log p(x) + correction))`` where ``p`` covers the
    targets and their dependents up to the first stochastic nodes. Undefined
    or infinite log densities are rejected. A rejection restores the values and
    cached log densities of every node the proposal touched exactly.
    """

    def setup_sampler(self, graph: Graph, **options) -> None:
        super().setup_sampler(graph, **options)
        self.reset()

    def reset(self) -> None:
        self.num_proposed = 0
        self.num_accepted = 0

    @property
    def acceptance_rate(self) -> float:
        return self.num_accepted / self.num_proposed if self.num_proposed else 0.0

    def current_value(self) -> torch.Tensor:
        return torch.cat([self.graph[t].flatten() for t in self.targets])

    @abstractmethod
    def propose(self, current: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        raise NotImplementedError

    def run(self) -> bool:
        current = self.current_value()
        old_log_prob = self.graph.get_log_prob(self.calc_nodes)
        snapshot = self.graph.snapshot(self.calc_nodes)

        proposed, log_correction = self.propose(current)
        new_log_prob = self.log_density(proposed)
        accept_log_prob = new_log_prob - old_log_prob + log_correction
        if not bool(torch.isfinite(new_log_prob)) or bool(torch.isnan(accept_log_prob)):
            accept_log_prob = torch.tensor(float("-inf"), dtype=DTYPE)

        accepted = bool(torch.rand((), dtype=DTYPE).log() < accept_log_prob)
        if not accepted:
            self.graph.restore(snapshot)
        self.num_proposed += 1
        self.num_accepted += int(accepted)

        if LOGGER.isEnabledFor(LogLevel.DEBUG_UPDATES.value):
            LOGGER.log(
                LogLevel.DEBUG_UPDATES.value,
                f"{self.kind} {list(self.targets)}: log ratio "
                f"{accept_log_prob.item():.4g}, "
                + ("accepted" if accepted else "rejected"),
            )
        self.do_adaptation(proposed if accepted else current, accepted)
        return accepted

    def do_adaptation(self, value: torch.Tensor, accepted: bool) -> None:
        ...
