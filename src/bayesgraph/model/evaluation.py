# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Node evaluation shared by ``Graph.calculate`` and compiled kernels. Nothing
here branches on tensor values."""

from typing import Dict, Mapping, Sequence, Union

import torch
from bayesgraph.model.families import Family
from bayesgraph.model.node import Deterministic, DTYPE


Binding = Union[str, torch.Tensor]


def any_undefined(values: Sequence[torch.Tensor]) -> torch.Tensor:
    undefined = torch.zeros((), dtype=torch.bool)
    for v in values:
        undefined = undefined | torch.isnan(v).any()
    return undefined


def evaluate_deterministic(
    definition: Deterministic, parent_values: Sequence[torch.Tensor]
) -> torch.Tensor:
    """Value of a deterministic node, NaN throughout if any input is undefined."""
    out = torch.as_tensor(definition.fn(*parent_values)).to(DTYPE)
    return torch.where(
        any_undefined(parent_values), torch.full_like(out, float("nan")), out
    )


def resolve_params(
    bindings: Mapping[str, Binding], values: Mapping[str, torch.Tensor]
) -> Dict[str, torch.Tensor]:
    """Replace parent names in ``bindings`` with their current values."""
    return {
        param: values[bound] if isinstance(bound, str) else bound
        for param, bound in bindings.items()
    }


def stochastic_log_density(
    family: Family,
    bindings: Mapping[str, Binding],
    value: torch.Tensor,
    values: Mapping[str, torch.Tensor],
) -> torch.Tensor:
    return family.log_density(value, resolve_params(bindings, values))
