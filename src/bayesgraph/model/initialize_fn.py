# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

from typing import Callable, TYPE_CHECKING

import torch
import torch.distributions as dist
from bayesgraph.model.node import DTYPE

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph

# still need to explicitly forward reference in type alias, see
# https://peps.python.org/pep-0563/#forward-references
InitializeFn = Callable[["Graph", str], torch.Tensor]


def init_to_uniform(graph: Graph, name: str) -> torch.Tensor:
    """
    Initializes a uniform distribution to sample from transformed to the
    support of the node's distribution.  A uniform draw over the support is used
    for finite discrete distributions, a bijective transform of Uniform(-2, 2)
    is used for constrained continuous distributions, and the prior is used
    otherwise.

    Used as an arg for ``Graph.initialize``

    Args:
        graph: Graph the node belongs to; parent values must be defined.
        name: Name of the stochastic node to initialize.
    """
    distribution = graph.distribution(name)
    sample_val = init_from_prior(graph, name)
    if distribution.has_enumerate_support:
        support = distribution.enumerate_support(expand=False).flatten()
        idx = torch.randint(support.numel(), sample_val.shape)
        return support[idx].to(DTYPE)
    elif not distribution.support.is_discrete:
        transform = dist.biject_to(distribution.support)
        unconstrained = transform.inv(sample_val)
        return transform(torch.rand_like(unconstrained) * 4 - 2).to(DTYPE)
    else:
        # fall back to sample from prior
        return sample_val


def init_from_prior(graph: Graph, name: str) -> torch.Tensor:
    """
    Samples from the node's distribution given the current parent values.

    Used as an arg for ``Graph.initialize``

    Args:
        graph: Graph the node belongs to; parent values must be defined.
        name: Name of the stochastic node to initialize.
    """
    node = graph.get_node(name)
    return node.family.sample(graph.parameters(name), node.shape)
