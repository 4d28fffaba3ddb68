# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Exceptions raised while building graphs, configuring samplers and running
MCMC. Every error derives from ``BayesGraphError`` and from the builtin that
best describes it, so callers can catch either."""

from typing import Iterable, Optional


class BayesGraphError(Exception):
    """Base class for all errors raised by bayesgraph."""


# construction ================================================================


class ConstructionError(BayesGraphError, ValueError):
    """The graph is malformed. Raised before any inference starts."""


class DuplicateNodeError(ConstructionError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Node '{name}' is already declared in the graph.")


class UnknownNodeError(ConstructionError, KeyError):
    def __init__(self, name: str, referenced_by: Optional[str] = None):
        self.name = name
        self.referenced_by = referenced_by
        msg = f"Node '{name}' is not declared in the graph."
        if referenced_by is not None:
            msg = f"Node '{referenced_by}' refers to undeclared node '{name}'."
        super().__init__(msg)

    # KeyError quotes its argument; keep the plain message
    def __str__(self) -> str:
        return str(self.args[0])


class DimensionError(ConstructionError):
    pass


class CyclicGraphError(ConstructionError):
    def __init__(self, nodes: Iterable[str]):
        self.nodes = tuple(nodes)
        super().__init__(
            "The graph contains a cycle through: " + ", ".join(self.nodes)
        )


class ConstantNodeError(ConstructionError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Node '{name}' is a constant and cannot be reassigned.")


class TypeMismatchError(BayesGraphError, TypeError):
    """A value disagrees with the shape or value type a node was declared with."""


# initialization ==============================================================


class InitializationWarning(UserWarning):
    """Some nodes have undefined values or log densities at the start of
    inference. Inference may proceed, but results for the affected nodes are
    unreliable until samplers visit them."""


# run stage ===================================================================


class RuntimeComputationError(BayesGraphError, RuntimeError):
    """Fatal to the current run-stage call."""


class ArityError(RuntimeComputationError):
    def __init__(self, instance: str, argument: str, expected: int, actual: int):
        self.instance = instance
        self.argument = argument
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{instance}: argument '{argument}' has {actual} elements, "
            f"expected {expected} as fixed at setup."
        )


class UninitializedReferenceError(RuntimeComputationError):
    def __init__(self, instance: str, nodes: Iterable[str]):
        self.instance = instance
        self.nodes = tuple(nodes)
        super().__init__(
            f"{instance}: read of node(s) never assigned a value: "
            + ", ".join(self.nodes)
        )


class StaleFunctionError(RuntimeComputationError):
    def __init__(self, instance: str):
        self.instance = instance
        super().__init__(
            f"{instance}: the graph topology changed after setup; "
            "the instance must be rebuilt."
        )


class TopologyLockedError(RuntimeComputationError):
    pass


class FrozenSetupError(RuntimeComputationError):
    pass


# configuration ===============================================================


class ConfigurationConflictError(BayesGraphError, ValueError):
    """The sampler configuration is invalid. Raised before execution."""


class ConflictError(ConfigurationConflictError):
    def __init__(self, targets: Iterable[str], existing: Iterable[str]):
        self.targets = tuple(targets)
        self.existing = tuple(existing)
        super().__init__(
            f"Node(s) {', '.join(self.existing)} already have a sampler; "
            "call remove_samplers before assigning a new one."
        )


class DataNodeError(ConfigurationConflictError):
    def __init__(self, nodes: Iterable[str], action: str = "be sampled"):
        self.nodes = tuple(nodes)
        super().__init__(
            f"Data node(s) {', '.join(self.nodes)} cannot {action}."
        )


class UnknownSamplerKindError(ConfigurationConflictError, KeyError):
    def __init__(self, kind: str, known: Iterable[str] = ()):
        self.kind = kind
        msg = f"Unknown sampler kind '{kind}'."
        known = sorted(known)
        if known:
            msg += " Registered kinds: " + ", ".join(known) + "."
        super().__init__(msg)

    def __str__(self) -> str:
        return str(self.args[0])


class UnsampledNodeError(ConfigurationConflictError):
    def __init__(self, nodes: Iterable[str]):
        self.nodes = tuple(nodes)
        super().__init__(
            "Stochastic node(s) without a sampler: " + ", ".join(self.nodes)
        )
