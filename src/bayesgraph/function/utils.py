# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from typing import Dict, Mapping, Sequence

import torch


class NodeVectorizer:
    """
    A utility class to convert the values of a fixed list of nodes into a single
    flattened Tensor or the other way around.

    Args:
        names: Node names, fixing the order of the entries.
        shapes: Shape of each node's value.
    """

    def __init__(self, names: Sequence[str], shapes: Sequence[torch.Size]) -> None:
        self.names = tuple(names)
        # store the size of the values, which will be used when we want to
        # reshape them back
        self._val_shapes = tuple(torch.Size(s) for s in shapes)
        # for names[i], its value corresponds to flatten_vec[idxs[i] : idxs[i + 1]]
        idxs = [0]
        for shape in self._val_shapes:
            idxs.append(idxs[-1] + shape.numel())
        self._idxs = tuple(idxs)

    @property
    def size(self) -> int:
        return self._idxs[-1]

    def to_vec(self, dict_in: Mapping[str, torch.Tensor]) -> torch.Tensor:
        """Concatenate the entries of a dictionary to a flattened Tensor"""
        if not self.names:
            return torch.zeros(0, dtype=torch.float64)
        return torch.cat([dict_in[name].flatten() for name in self.names])

    def to_dict(self, vec_in: torch.Tensor) -> Dict[str, torch.Tensor]:
        """Reconstruct a dictionary out of a flattened Tensor"""
        retval = {}
        for name, shape, idx_begin, idx_end in zip(
            self.names, self._val_shapes, self._idxs, self._idxs[1:]
        ):
            retval[name] = vec_in[idx_begin:idx_end].reshape(shape)
        return retval
