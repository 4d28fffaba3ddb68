# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

# bayesgraph.config imports the JIT backend from here, so this package must not
# import bayesgraph.model at import time. LogDensityFunction and GraphKernel are
# exported from bayesgraph directly.
from bayesgraph.function.jit_backend import get_backend, jit_compile, JITBackend
from bayesgraph.function.two_stage import TwoStageFunction
from bayesgraph.function.utils import NodeVectorizer


__all__ = [
    "JITBackend",
    "NodeVectorizer",
    "TwoStageFunction",
    "get_backend",
    "jit_compile",
]
