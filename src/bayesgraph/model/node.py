# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

import dataclasses
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import torch


DTYPE = torch.float64


class NodeKind(Enum):
    STOCHASTIC = "stochastic"
    DETERMINISTIC = "deterministic"
    CONSTANT = "constant"


class ValueType(Enum):
    """Element type of a node value. Values are always stored as float64 tensors
    (``NaN`` marks an undefined element); ``INTEGER`` nodes only accept integral
    values."""

    REAL = "real"
    INTEGER = "integer"


# A parameter of a stochastic node is either the name of a parent node or a
# literal number / tensor.
ParamValue = Union[str, float, int, torch.Tensor]


@dataclasses.dataclass(frozen=True)
class Constant:
    value: Any


@dataclasses.dataclass(frozen=True)
class Deterministic:
    """
    A node whose value is ``fn(*parent_values)``. ``fn`` must be a pure tensor
    function without control flow on values so that it can be compiled.

    Example::

        Deterministic(lambda a, b: a + 2 * b, ["a", "b"])
    """

    fn: Callable[..., torch.Tensor]
    parents: Tuple[str, ...]

    def __init__(self, fn: Callable[..., torch.Tensor], parents: Sequence[str]):
        object.__setattr__(self, "fn", fn)
        object.__setattr__(self, "parents", tuple(parents))


@dataclasses.dataclass(frozen=True)
class Stochastic:
    """
    A node drawn from a distribution family, with each parameter bound to either
    a parent node name or a literal.

    Example::

        Stochastic("normal", loc="mu", scale=1.0)
    """

    family: str
    params: Tuple[Tuple[str, ParamValue], ...]

    def __init__(self, family: str, **params: ParamValue):
        object.__setattr__(self, "family", family)
        object.__setattr__(self, "params", tuple(params.items()))

    @property
    def parents(self) -> Tuple[str, ...]:
        seen: List[str] = []
        for _, value in self.params:
            if isinstance(value, str) and value not in seen:
                seen.append(value)
        return tuple(seen)

    def param_dict(self) -> Dict[str, ParamValue]:
        return dict(self.params)


Definition = Union[Constant, Deterministic, Stochastic]

_KIND_OF_DEFINITION = {
    Constant: NodeKind.CONSTANT,
    Deterministic: NodeKind.DETERMINISTIC,
    Stochastic: NodeKind.STOCHASTIC,
}


def kind_of(definition: Definition) -> NodeKind:
    return _KIND_OF_DEFINITION[type(definition)]


@dataclasses.dataclass
class Node:
    """
    Primitive used for maintaining the state and metadata of a node. Nodes are
    owned by a ``Graph``; other components refer to them by name.
    """

    name: str
    "Identifier of the node"

    kind: NodeKind

    definition: Definition

    shape: torch.Size
    "Fixed at declaration"

    value_type: ValueType

    index: int
    "Position in declaration order, which is also a topological order"

    value: torch.Tensor
    "Current value, float64, NaN where undefined"

    log_prob: torch.Tensor
    "Cached log density (stochastic nodes only), NaN until calculated"

    parents: Tuple[str, ...] = ()
    children: List[str] = dataclasses.field(default_factory=list)
    is_data: bool = False
    assigned: bool = False
    "Whether the node was ever given a value"

    family: Optional[Any] = None
    "Distribution family (stochastic nodes only)"

    @property
    def is_stochastic(self) -> bool:
        return self.kind is NodeKind.STOCHASTIC

    @property
    def is_deterministic(self) -> bool:
        return self.kind is NodeKind.DETERMINISTIC

    @property
    def is_constant(self) -> bool:
        return self.kind is NodeKind.CONSTANT

    @property
    def numel(self) -> int:
        return int(torch.Size(self.shape).numel())

    def copy_state(self) -> Node:
        """Return a copy sharing the definition but owning its value and log prob"""
        return dataclasses.replace(
            self,
            value=self.value.clone(),
            log_prob=self.log_prob.clone(),
            children=list(self.children),
        )
