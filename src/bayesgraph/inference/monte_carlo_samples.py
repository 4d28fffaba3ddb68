# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import itertools
from typing import Any, Iterator, List, Mapping, Optional, Union

import arviz as az
import torch
import xarray as xr
from bayesgraph.inference.utils import detach_samples, merge_dicts, SampleDict


class MonteCarloSamples(Mapping[str, torch.Tensor]):
    """
    Recorded sweeps of an MCMC run, keyed by monitored node name. Values are
    stacked as (chain, sweep, *node shape); a view returned by ``get_chain``
    drops the chain dimension.
    """

    def __init__(
        self,
        chain_results: Union[List[SampleDict], SampleDict],
        logll_results: Optional[Union[List[SampleDict], SampleDict]] = None,
        observations: Optional[SampleDict] = None,
    ):
        if isinstance(chain_results, list):
            self.num_chains = len(chain_results)
            chain_results = merge_dicts(chain_results, 0) if chain_results[0] else {}
        else:
            self.num_chains = (
                next(iter(chain_results.values())).shape[0] if chain_results else 0
            )
        self.samples: SampleDict = dict(chain_results)

        if logll_results is not None:
            if isinstance(logll_results, list):
                logll = merge_dicts(logll_results, 0) if logll_results[0] else {}
            else:
                logll = logll_results
            self.log_likelihoods: Optional[SampleDict] = dict(logll)
        else:
            self.log_likelihoods = None

        self.observations = observations

        self.single_chain_view = False

    def __getitem__(self, name: str) -> torch.Tensor:
        """
        :param name: node to view values of
        :results: samples drawn during inference for the specified node
        """
        return self.get_variable(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self.samples)

    def __len__(self) -> int:
        return len(self.samples)

    def __str__(self) -> str:
        return str(self.samples)

    def get_chain(self, chain: int = 0) -> "MonteCarloSamples":
        """
        View of a single chain. Views cannot be narrowed further.
        """
        if self.single_chain_view:
            raise ValueError(
                "This MonteCarloSamples is already a single chain view"
            )
        elif chain < 0 or chain >= self.num_chains:
            raise IndexError(
                f"Chain {chain} out of range for {self.num_chains} chain(s)"
            )

        samples = {name: value[[chain]] for name, value in self.samples.items()}
        if self.log_likelihoods is None:
            logll = None
        else:
            logll = {
                name: value[[chain]] for name, value in self.log_likelihoods.items()
            }

        new_mcs = MonteCarloSamples(
            chain_results=samples,
            logll_results=logll,
            observations=self.observations,
        )
        new_mcs.num_chains = 1
        new_mcs.single_chain_view = True
        return new_mcs

    def get_variable(self, name: str, thinning: int = 1) -> torch.Tensor:
        """
        Let C be the number of chains, S be the number of recorded sweeps.

        if no chain specified:
            samples[name] returns a Tensor of (C, S, (shape of node))
        if a chain is specified:
            samples[name] returns a Tensor of (S, (shape of node))

        :param name: node to see samples of
        :param thinning: keep one sample out of ``thinning``
        :returns: samples drawn during inference for the specified node
        """
        if not isinstance(name, str):
            raise TypeError(
                "The key is required to be a node name but is of type "
                f"{type(name).__name__}."
            )
        samples = self.samples[name]
        if thinning > 1:
            samples = samples[:, ::thinning]
        if self.single_chain_view:
            samples = samples.squeeze(0)
        return samples

    def get_log_likelihoods(self, name: str) -> torch.Tensor:
        """
        :returns: log likelihoods of a data node recorded during inference
        """
        if self.log_likelihoods is None:
            raise ValueError("Log likelihoods were not recorded for this run.")
        logll = self.log_likelihoods[name]
        if self.single_chain_view:
            logll = logll.squeeze(0)
        return logll

    def get(
        self,
        name: str,
        default: Any = None,
        chain: Optional[int] = None,
        thinning: int = 1,
    ):
        """
        Return the samples of the node if it was monitored, otherwise return the
        default value. This method is analogous to Python's dict.get(). The
        chain parameter serves the same purpose as in get_chain.
        """
        if name not in self.samples:
            return default

        if chain is None:
            samples = self
        else:
            samples = self.get_chain(chain)

        return samples.get_variable(name, thinning)

    def get_num_samples(self) -> int:
        """
        :returns: the number of recorded sweeps per chain
        """
        if not self.samples:
            return 0
        return next(iter(self.samples.values())).shape[1]

    @property
    def column_names(self) -> List[str]:
        """Names of the columns of ``as_matrix``: one per scalar element of
        every monitored node, with 1-based indices for array elements."""
        names = []
        for name, value in self.samples.items():
            shape = value.shape[2:]
            if len(shape) == 0:
                names.append(name)
                continue
            for index in itertools.product(*(range(1, n + 1) for n in shape)):
                names.append(f"{name}[{', '.join(str(i) for i in index)}]")
        return names

    def as_matrix(self, chain: int = 0) -> torch.Tensor:
        """
        The samples of one chain as a matrix with one row per recorded sweep
        and one column per scalar element of every monitored node, in the order
        of ``column_names``.
        """
        if not self.single_chain_view and (chain < 0 or chain >= self.num_chains):
            raise IndexError(
                f"Chain {chain} out of range for {self.num_chains} chain(s)"
            )
        columns = []
        for value in self.samples.values():
            rows = value[0] if self.single_chain_view else value[chain]
            columns.append(rows.reshape(rows.shape[0], rows.shape[1:].numel()))
        if not columns:
            return torch.empty(self.get_num_samples(), 0, dtype=torch.float64)
        return torch.cat(columns, dim=1)

    def to_xarray(self) -> xr.Dataset:
        """
        The posterior group of ``to_inference_data`` as an xarray Dataset.
        """
        return self.to_inference_data()["posterior"]

    def to_inference_data(self) -> az.InferenceData:
        """
        Convert to arviz InferenceData with posterior, log likelihood and
        observed data groups.
        """
        if self.single_chain_view:
            raise ValueError("Convert the full MonteCarloSamples, not a chain view.")
        posterior = detach_samples(self.samples)
        if self.log_likelihoods:
            log_likelihoods = detach_samples(self.log_likelihoods)
        else:
            log_likelihoods = None
        if self.observations:
            observed_data = detach_samples(self.observations)
        else:
            observed_data = None

        return az.from_dict(
            posterior=posterior,
            log_likelihood=log_likelihoods,
            observed_data=observed_data,
        )
