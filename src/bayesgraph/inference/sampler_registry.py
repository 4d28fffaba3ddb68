# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Catalog of sampler kinds, looked up by name when samplers are assigned."""

from typing import Callable, Dict, Tuple, Type, TYPE_CHECKING

from bayesgraph.exceptions import UnknownSamplerKindError

if TYPE_CHECKING:
    from bayesgraph.inference.samplers.base_sampler import BaseSampler


_SAMPLER_KINDS: Dict[str, "Type[BaseSampler]"] = {}


def register_sampler(
    name: str, *aliases: str
) -> Callable[["Type[BaseSampler]"], "Type[BaseSampler]"]:
    """
    Class decorator registering a sampler kind under ``name`` and any
    ``aliases``. A later registration under the same name replaces the earlier
    one.

    Example::

        @register_sampler("my_gibbs")
        class MyGibbsSampler(BaseSampler):
            ...
    """

    def wrapper(cls: "Type[BaseSampler]") -> "Type[BaseSampler]":
        if not cls.kind:
            cls.kind = name
        for key in (name,) + aliases:
            _SAMPLER_KINDS[key] = cls
        return cls

    return wrapper


def get_sampler_kind(name: str) -> "Type[BaseSampler]":
    try:
        return _SAMPLER_KINDS[name]
    except KeyError:
        raise UnknownSamplerKindError(name, _SAMPLER_KINDS) from None


def registered_kinds() -> Tuple[str, ...]:
    return tuple(_SAMPLER_KINDS)
