# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Functions bound to a graph with a one-time setup stage and a repeatable run
stage. Setup inspects the graph and decides which nodes the function touches;
run only reads and writes values of those nodes. This split is what allows
the run stage to be compiled.
"""

from __future__ import annotations

import inspect
from typing import Any, Dict, FrozenSet, Iterable, Optional, TYPE_CHECKING

import torch
from bayesgraph.exceptions import (
    ArityError,
    FrozenSetupError,
    StaleFunctionError,
    UninitializedReferenceError,
)
from bayesgraph.function.jit_backend import JITBackend

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


class TwoStageFunction:
    """
    Base class of functions bound to a graph.

    The constructor calls ``setup(graph, *args, **kwargs)`` exactly once. When it
    returns, every attribute holding a list of node names is converted to a
    tuple and may no longer be rebound. Subclasses implement ``run``, which is
    invoked through ``__call__``.

    Args:
        graph: Graph the function is bound to.
        jit_backend: Backend used to compile the run stage where the subclass
            supports it. Defaults to the graph's options.
    """

    _frozen_attrs: FrozenSet[str] = frozenset()

    def __init__(
        self,
        graph: Graph,
        *args,
        jit_backend: Optional[JITBackend] = None,
        **kwargs,
    ):
        self.graph = graph
        self.jit_backend = (
            graph.options.jit_backend if jit_backend is None else jit_backend
        )
        self._arg_lengths: Dict[str, int] = {}
        self.setup(graph, *args, **kwargs)
        self._topology_version = graph.topology_version
        self._freeze()

    @property
    def name(self) -> str:
        return type(self).__name__

    def setup(self, graph: Graph, *args, **kwargs) -> None:
        raise NotImplementedError

    def run(self, *args, **kwargs) -> Any:
        raise NotImplementedError

    def _freeze(self) -> None:
        frozen = set()
        for attr, value in list(vars(self).items()):
            if isinstance(value, (list, tuple)) and all(
                isinstance(v, str) for v in value
            ):
                object.__setattr__(self, attr, tuple(value))
                frozen.add(attr)
        object.__setattr__(self, "_frozen_attrs", frozenset(frozen))

    def __setattr__(self, attr: str, value: Any) -> None:
        if attr in self._frozen_attrs:
            raise FrozenSetupError(
                f"{self.name}: '{attr}' was fixed during setup and cannot be rebound."
            )
        object.__setattr__(self, attr, value)

    def freeze_length(self, argument: str, length: int) -> None:
        """Require ``argument`` of ``run`` to have ``length`` elements whenever it
        is given."""
        self._arg_lengths[argument] = length

    def _check_lengths(self, args, kwargs) -> None:
        if not self._arg_lengths:
            return
        bound = inspect.signature(self.run).bind(*args, **kwargs)
        for argument, expected in self._arg_lengths.items():
            value = bound.arguments.get(argument)
            if value is None:
                continue
            actual = torch.as_tensor(value).numel()
            if actual != expected:
                raise ArityError(self.name, argument, expected, actual)

    def __call__(self, *args, **kwargs) -> Any:
        if self.graph.options.check_topology and self.is_stale:
            raise StaleFunctionError(self.name)
        self._check_lengths(args, kwargs)
        with self.graph.topology_locked(self.name):
            return self.run(*args, **kwargs)

    @property
    def is_stale(self) -> bool:
        return self.graph.topology_version != self._topology_version

    def read(self, names: Iterable[str]) -> Dict[str, torch.Tensor]:
        """Current values of ``names``. Every node must have been assigned."""
        nodes = [self.graph.get_node(name) for name in names]
        unassigned = [n.name for n in nodes if not n.assigned]
        if unassigned:
            raise UninitializedReferenceError(self.name, unassigned)
        return {n.name: n.value for n in nodes}

    def __repr__(self) -> str:
        return f"{self.name}()"
