# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from bayesgraph.model.families import FAMILIES, Family, get_family, register_family
from bayesgraph.model.graph import Graph, InitializationInfo
from bayesgraph.model.initialize_fn import (
    init_from_prior,
    init_to_uniform,
    InitializeFn,
)
from bayesgraph.model.model_spec import build_graph, NodeDeclaration, stochastic
from bayesgraph.model.node import (
    Constant,
    Deterministic,
    Node,
    NodeKind,
    Stochastic,
    ValueType,
)
from bayesgraph.model.utils import get_bayesgraph_logger, LogLevel


__all__ = [
    "Constant",
    "Deterministic",
    "FAMILIES",
    "Family",
    "Graph",
    "InitializationInfo",
    "InitializeFn",
    "LogLevel",
    "Node",
    "NodeDeclaration",
    "NodeKind",
    "Stochastic",
    "ValueType",
    "build_graph",
    "get_bayesgraph_logger",
    "get_family",
    "init_from_prior",
    "init_to_uniform",
    "register_family",
    "stochastic",
]
