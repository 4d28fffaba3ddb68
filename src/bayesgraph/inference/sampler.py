# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

import threading
import warnings
from types import TracebackType
from typing import Generator, NoReturn, Optional, Sequence, Type, TYPE_CHECKING

from bayesgraph.inference.samplers.base_sampler import BaseSampler

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


class Sampler(Generator[int, None, None]):
    """
    Samplers are generators of sweeps over a graph. Each step runs every
    sampler of the schedule once, in order, and yields the 1-based index of the
    completed sweep. The graph holds the state of the chain after the sweep.

    Args:
        graph: The chain's graph.
        samplers: Sampler instances bound to ``graph``.
        schedule: Indices into ``samplers`` run in one sweep.
        num_sweeps: Number of sweeps. If none is specified, num_sweeps = inf.
        stop_event: When set, iteration ends after the current sweep.
    """

    def __init__(
        self,
        graph: Graph,
        samplers: Sequence[BaseSampler],
        schedule: Sequence[int],
        num_sweeps: Optional[int] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.graph = graph
        self.samplers = list(samplers)
        self.schedule = tuple(schedule)
        self._num_sweeps_remaining = float("inf") if num_sweeps is None else num_sweeps
        self._stop_event = stop_event
        self.sweep = 0

    def send(self, value: None = None) -> int:
        if self._num_sweeps_remaining <= 0:
            raise StopIteration
        if self._stop_event is not None and self._stop_event.is_set():
            raise StopIteration

        for i in self.schedule:
            sampler = self.samplers[i]
            try:
                sampler()
            except RuntimeError as e:
                if "singular" in str(e) or "not positive-definite" in str(e):
                    # a failed factorization is equivalent to a rejection; the
                    # sampler is retried in the next sweep
                    warnings.warn(f"Update rejected: {e}", RuntimeWarning)
                    continue
                raise e

        # update attributes at last, so that exceptions during inference won't leave
        # self in an invalid state
        self.sweep += 1
        self._num_sweeps_remaining -= 1
        return self.sweep

    def throw(
        self,
        typ: Type[BaseException],
        val: Optional[BaseException] = None,
        tb: Optional[TracebackType] = None,
    ) -> NoReturn:
        """Use the default error handling behavior (throw Exception as-is)"""
        super().throw(typ, val, tb)
