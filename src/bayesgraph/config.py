# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

import dataclasses

from bayesgraph.function.jit_backend import JITBackend


@dataclasses.dataclass(frozen=True)
class Options:
    """
    Configuration threaded explicitly into ``Graph``, ``MCMCConfiguration`` and
    samplers. Options are immutable; use ``replace`` to derive a variant, so two
    chains or two configurations never observe each other's settings.

    Args:
        use_conjugacy: Let ``configure_defaults`` assign conjugate Gibbs samplers
            where the conjugacy structure allows it.
        use_posterior_predictive: Let ``configure_defaults`` assign prior
            simulation to nodes with no data downstream.
        block_multivariate: Assign ``RW_block`` to multi-element continuous nodes
            instead of treating every element through one scalar sampler.
        adapt_interval: Number of iterations between adaptations of adaptive
            samplers.
        jit_backend: Backend used to compile the log-density kernels of samplers.
        check_topology: Verify on every run-stage call that the graph topology
            has not changed since setup.
    """

    use_conjugacy: bool = True
    use_posterior_predictive: bool = True
    block_multivariate: bool = True
    adapt_interval: int = 200
    jit_backend: JITBackend = JITBackend.NONE
    check_topology: bool = True

    def replace(self, **changes) -> Options:
        """Return a new Options object with fields replaced by the changes"""
        return dataclasses.replace(self, **changes)


DEFAULT_OPTIONS = Options()
