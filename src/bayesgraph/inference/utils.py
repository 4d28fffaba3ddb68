# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import random
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, Dict, List, TypeVar

import numpy as np
import torch


SampleDict = Dict[str, torch.Tensor]

T = TypeVar("T")


class VerboseLevel(Enum):
    """
    Enum class which is used to set how much output is printed during inference.
    LOAD_BAR enables tqdm for full inference loop.
    """

    OFF = 0
    LOAD_BAR = 1


def merge_dicts(dicts: List[SampleDict], dim: int = 0) -> SampleDict:
    """
    Merge per-chain dicts of samples into a single dict, stacking each node
    across a new dimension. Every dict must hold the same nodes.
    """
    keys = list(dict.fromkeys(k for d in dicts for k in d))
    for idx, d in enumerate(dicts):
        missing = [k for k in keys if k not in d]
        if missing:
            raise ValueError(f"{missing} are missing in dict {idx}")

    return {k: torch.stack([d[k] for d in dicts], dim=dim) for k in keys}


def detach_samples(samples: SampleDict) -> Dict[str, np.ndarray]:
    """Convert a dictionary of samples to numpy arrays for arviz."""
    return {name: value.detach().cpu().numpy() for name, value in samples.items()}


def seed(seed: int) -> None:
    torch.manual_seed(seed)
    random.seed(seed)
    np.random.seed(seed)


def _execute_in_new_thread(f: Callable[..., T], *args, **kwargs) -> T:
    """Run ``f`` in a fresh thread, so that a forked worker process does not
    reuse the parent's torch thread pool state."""
    with ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(f, *args, **kwargs).result()
