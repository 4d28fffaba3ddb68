# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

from typing import Sequence, TYPE_CHECKING

import torch
from bayesgraph.exceptions import ConfigurationConflictError
from bayesgraph.inference.sampler_registry import register_sampler
from bayesgraph.inference.samplers.binary import _EnumerationSampler
from bayesgraph.model.families import has_finite_support

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


@register_sampler("categorical")
class CategoricalGibbsSampler(_EnumerationSampler):
    """Exact Gibbs update over the categories {0, ..., K - 1} of a categorical
    node. K is fixed by the shape of the node's ``probs``."""

    kind = "categorical"

    def support_points(self, graph: Graph) -> Sequence[float]:
        node = graph.get_node(self.targets[0])
        if node.family is None or not has_finite_support(node.family):
            found = node.family.name if node.family else node.kind.value
            raise ConfigurationConflictError(
                f"{self.kind} sampler requires a categorical node; "
                f"'{node.name}' is {found}."
            )
        probs = graph.bindings(node.name)["probs"]
        shape = graph.get_node(probs).shape if isinstance(probs, str) else probs.shape
        size = node.family.support_size({"probs": torch.zeros(shape)})
        return [float(k) for k in range(size)]
