# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Distribution families available to stochastic nodes.

Each family is a small capability object over a ``torch.distributions`` class:
it knows its parameter names, the shape a node takes given its parameter
shapes, how to draw a value and how to evaluate a log density. Log densities
are written without Python control flow on tensor values so that the same code
runs interpreted and inside a traced kernel.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence, Type

import torch
import torch.distributions as dist
from bayesgraph.exceptions import ConstructionError, DimensionError
from bayesgraph.model.node import DTYPE, ValueType


Params = Mapping[str, torch.Tensor]


class Family:
    """
    Capability interface implemented per distribution family.

    Args:
        name: Name used in ``Stochastic(name, ...)`` definitions.
        dist_class: The ``torch.distributions`` class backing the family.
        param_names: Ordered parameter names accepted by ``dist_class``.
        defaults: Values for parameters that may be omitted.
        discrete: Whether values are integers.
        event_dim: Number of trailing dimensions that form one draw.
    """

    def __init__(
        self,
        name: str,
        dist_class: Type[dist.Distribution],
        param_names: Sequence[str],
        defaults: Optional[Dict[str, float]] = None,
        discrete: bool = False,
        event_dim: int = 0,
    ):
        self.name = name
        self.dist_class = dist_class
        self.param_names = tuple(param_names)
        self.defaults = defaults or {}
        self.discrete = discrete
        self.event_dim = event_dim

    def __repr__(self) -> str:
        return f"Family({self.name})"

    @property
    def value_type(self) -> ValueType:
        return ValueType.INTEGER if self.discrete else ValueType.REAL

    def complete_params(self, params: Mapping[str, object]) -> Dict[str, object]:
        """Validate parameter names and fill in defaults."""
        unknown = set(params) - set(self.param_names)
        if unknown:
            raise DimensionError(
                f"{self.name} does not take parameter(s) {', '.join(sorted(unknown))}"
            )
        full = dict(self.defaults)
        full.update(params)
        missing = [p for p in self.param_names if p not in full]
        if missing:
            raise DimensionError(
                f"{self.name} requires parameter(s) {', '.join(missing)}"
            )
        return {p: full[p] for p in self.param_names}

    def distribution(self, params: Params) -> dist.Distribution:
        return self.dist_class(**params, validate_args=False)

    def dimensions(self, param_shapes: Mapping[str, torch.Size]) -> torch.Size:
        """Shape of one draw given the shapes of the parameters."""
        try:
            return torch.Size(torch.broadcast_shapes(*param_shapes.values()))
        except RuntimeError as e:
            raise DimensionError(
                f"Parameters of {self.name} have incompatible shapes "
                f"{dict(param_shapes)}"
            ) from e

    def sample(self, params: Params, shape: torch.Size) -> torch.Tensor:
        d = self.distribution(params)
        batch_shape = shape[: len(shape) - self.event_dim]
        if d.batch_shape != batch_shape:
            d = d.expand(batch_shape)
        return d.sample().to(DTYPE)

    def support(self, params: Params) -> dist.constraints.Constraint:
        return self.distribution(params).support

    def _cast(self, value: torch.Tensor) -> torch.Tensor:
        return value

    def log_density(self, value: torch.Tensor, params: Params) -> torch.Tensor:
        """
        Summed log density of ``value``. Returns ``-inf`` for values outside the
        support and ``NaN`` when the value or any parameter is undefined.
        """
        d = self.distribution(params)
        inside = d.support.check(value)
        mask = inside
        if self.event_dim:
            mask = inside.unsqueeze(-1).expand_as(value)
        safe_value = torch.where(mask, value, torch.zeros_like(value))
        log_prob = d.log_prob(self._cast(safe_value))
        log_prob = torch.where(
            inside, log_prob, torch.full_like(log_prob, float("-inf"))
        ).sum()
        undefined = torch.isnan(value).any()
        for p in params.values():
            undefined = undefined | torch.isnan(p).any()
        return torch.where(
            undefined, torch.full_like(log_prob, float("nan")), log_prob
        )


class _BatchedEventFamily(Family):
    """Families whose last parameter dimension is not part of the batch shape."""

    def __init__(self, *args, event_param: str, matrix_param: Optional[str], **kwargs):
        self.event_param = event_param
        self.matrix_param = matrix_param
        super().__init__(*args, **kwargs)

    def dimensions(self, param_shapes: Mapping[str, torch.Size]) -> torch.Size:
        shapes = []
        for name, shape in param_shapes.items():
            if name == self.matrix_param:
                if len(shape) < 2 or shape[-1] != shape[-2]:
                    raise DimensionError(
                        f"{self.name}: {name} must be a square matrix, "
                        f"got {tuple(shape)}"
                    )
                shape = shape[:-1]
            elif len(shape) == 0:
                raise DimensionError(f"{self.name}: {name} must be a vector")
            shapes.append(shape)
        try:
            full = torch.Size(torch.broadcast_shapes(*shapes))
        except RuntimeError as e:
            raise DimensionError(
                f"Parameters of {self.name} have incompatible shapes "
                f"{dict(param_shapes)}"
            ) from e
        # categorical draws drop the category dimension
        return full if self.event_dim else full[:-1]


class _CategoricalFamily(_BatchedEventFamily):
    def _cast(self, value: torch.Tensor) -> torch.Tensor:
        return value.long()

    def support_size(self, params: Params) -> int:
        return int(params[self.event_param].shape[-1])


FAMILIES: Dict[str, Family] = {}


def register_family(family: Family) -> Family:
    FAMILIES[family.name] = family
    return family


def get_family(name: str) -> Family:
    try:
        return FAMILIES[name]
    except KeyError:
        raise ConstructionError(
            f"Unknown distribution family '{name}'. Known families: "
            + ", ".join(sorted(FAMILIES))
        ) from None


register_family(Family("normal", dist.Normal, ["loc", "scale"]))
register_family(Family("lognormal", dist.LogNormal, ["loc", "scale"]))
register_family(Family("halfnormal", dist.HalfNormal, ["scale"]))
register_family(Family("gamma", dist.Gamma, ["concentration", "rate"]))
register_family(Family("exponential", dist.Exponential, ["rate"]))
register_family(Family("beta", dist.Beta, ["concentration1", "concentration0"]))
register_family(Family("uniform", dist.Uniform, ["low", "high"]))
register_family(Family("bernoulli", dist.Bernoulli, ["probs"], discrete=True))
register_family(
    Family("binomial", dist.Binomial, ["total_count", "probs"], discrete=True)
)
register_family(Family("poisson", dist.Poisson, ["rate"], discrete=True))
register_family(
    _CategoricalFamily(
        "categorical",
        dist.Categorical,
        ["probs"],
        discrete=True,
        event_param="probs",
        matrix_param=None,
    )
)
register_family(
    _BatchedEventFamily(
        "mvnormal",
        dist.MultivariateNormal,
        ["loc", "covariance_matrix"],
        event_dim=1,
        event_param="loc",
        matrix_param="covariance_matrix",
    )
)


def is_binary(family: Family, params: Params) -> bool:
    if family.name == "bernoulli":
        return True
    if family.name == "binomial":
        return bool((params["total_count"] == 1).all())
    return False


def has_finite_support(family: Family) -> bool:
    return isinstance(family, _CategoricalFamily)


def lower_bound(family: Family, params: Params) -> Optional[torch.Tensor]:
    """Lower bound of a continuous support bounded only from below, else None."""
    support = family.support(params)
    if isinstance(support, dist.constraints.greater_than) or isinstance(
        support, dist.constraints.greater_than_eq
    ):
        return torch.as_tensor(support.lower_bound, dtype=DTYPE)
    if support is dist.constraints.positive or support is dist.constraints.nonnegative:
        return torch.zeros((), dtype=DTYPE)
    return None
