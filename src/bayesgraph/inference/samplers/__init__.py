# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from bayesgraph.inference.samplers.base_mh_sampler import BaseMHSampler
from bayesgraph.inference.samplers.base_sampler import BaseSampler
from bayesgraph.inference.samplers.binary import BinaryGibbsSampler
from bayesgraph.inference.samplers.block_random_walk import BlockRandomWalkSampler
from bayesgraph.inference.samplers.categorical import CategoricalGibbsSampler
from bayesgraph.inference.samplers.conjugate import (
    BetaConjugateSampler,
    conjugate_kind,
    NormalConjugateSampler,
)
from bayesgraph.inference.samplers.posterior_predictive import (
    has_data_downstream,
    PosteriorPredictiveSampler,
)
from bayesgraph.inference.samplers.random_walk import RandomWalkSampler
from bayesgraph.inference.samplers.slice import SliceSampler


__all__ = [
    "BaseMHSampler",
    "BaseSampler",
    "BetaConjugateSampler",
    "BinaryGibbsSampler",
    "BlockRandomWalkSampler",
    "CategoricalGibbsSampler",
    "NormalConjugateSampler",
    "PosteriorPredictiveSampler",
    "RandomWalkSampler",
    "SliceSampler",
    "conjugate_kind",
    "has_data_downstream",
]
