# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from bayesgraph.inference.mcmc import MCMC
from bayesgraph.inference.mcmc_configuration import MCMCConfiguration, SamplerAssignment
from bayesgraph.inference.monte_carlo_samples import MonteCarloSamples
from bayesgraph.inference.sampler import Sampler
from bayesgraph.inference.sampler_registry import (
    get_sampler_kind,
    register_sampler,
    registered_kinds,
)
from bayesgraph.inference.utils import seed, VerboseLevel


__all__ = [
    "MCMC",
    "MCMCConfiguration",
    "MonteCarloSamples",
    "Sampler",
    "SamplerAssignment",
    "VerboseLevel",
    "get_sampler_kind",
    "register_sampler",
    "registered_kinds",
    "seed",
]
