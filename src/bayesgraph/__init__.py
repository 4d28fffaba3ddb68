# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from bayesgraph.config import DEFAULT_OPTIONS, Options
from bayesgraph.function import JITBackend, TwoStageFunction
from bayesgraph.function.kernel import GraphKernel
from bayesgraph.function.log_density import LogDensityFunction
from bayesgraph.inference import (
    MCMC,
    MCMCConfiguration,
    MonteCarloSamples,
    register_sampler,
    seed,
    VerboseLevel,
)
from bayesgraph.model import (
    build_graph,
    Constant,
    Deterministic,
    get_bayesgraph_logger,
    Graph,
    init_from_prior,
    init_to_uniform,
    LogLevel,
    NodeDeclaration,
    NodeKind,
    Stochastic,
    ValueType,
)


__version__ = "0.1.0"

LOGGER = get_bayesgraph_logger()

__all__ = [
    "Constant",
    "DEFAULT_OPTIONS",
    "Deterministic",
    "Graph",
    "GraphKernel",
    "JITBackend",
    "LogDensityFunction",
    "LogLevel",
    "MCMC",
    "MCMCConfiguration",
    "MonteCarloSamples",
    "NodeDeclaration",
    "NodeKind",
    "Options",
    "Stochastic",
    "TwoStageFunction",
    "ValueType",
    "VerboseLevel",
    "build_graph",
    "init_from_prior",
    "init_to_uniform",
    "register_sampler",
    "seed",
]
