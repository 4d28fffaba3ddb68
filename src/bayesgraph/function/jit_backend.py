# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import warnings
from enum import Enum

from typing import Callable, Sequence

import torch


class JITBackend(Enum):
    NONE = "none"
    TRACE = "trace"
    INDUCTOR = "inductor"


def get_backend(jit_compile: bool, experimental_inductor_compile: bool) -> JITBackend:
    """A helper function to select between the Torch JIT backends based on the
    flags"""
    if experimental_inductor_compile:
        if jit_compile:
            warnings.warn(
                "Overriding jit_compile option with experimental_inductor_compile",
                stacklevel=3,
            )
        return JITBackend.INDUCTOR
    elif jit_compile:
        return JITBackend.TRACE
    else:
        return JITBackend.NONE


def inductor_jit(f: Callable) -> Callable:
    """
    Compile ``f`` with TorchInductor. Compilation happens on the first call,
    with shapes fixed to the ones seen then.
    """
    return torch.compile(f, backend="inductor", dynamic=False, fullgraph=False)


def jit_compile(
    f: Callable, backend: JITBackend, example_inputs: Sequence[torch.Tensor] = ()
) -> Callable:
    """
    Compile a pure tensor function. ``f`` must not branch on tensor values:
    tracing records the operations executed for ``example_inputs`` only.
    """
    if backend is JITBackend.TRACE:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", category=torch.jit.TracerWarning)
            return torch.jit.trace(f, tuple(example_inputs), check_trace=False)
    elif backend is JITBackend.INDUCTOR:
        return inductor_jit(f)
    else:
        # Fall back to use PyTorch
        return f
