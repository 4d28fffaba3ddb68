# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

import contextlib
import logging
import re
import warnings
from typing import (
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
)

import torch
import torch.distributions as dist
from bayesgraph.config import DEFAULT_OPTIONS, Options
from bayesgraph.exceptions import (
    ConstantNodeError,
    ConstructionError,
    CyclicGraphError,
    DataNodeError,
    DimensionError,
    DuplicateNodeError,
    InitializationWarning,
    TopologyLockedError,
    TypeMismatchError,
    UnknownNodeError,
)
from bayesgraph.model.dependencies import DependencyResolver, NodeNames
from bayesgraph.model.evaluation import (
    any_undefined,
    Binding,
    evaluate_deterministic,
    resolve_params,
)
from bayesgraph.model.families import get_family
from bayesgraph.model.initialize_fn import init_from_prior, InitializeFn
from bayesgraph.model.node import (
    Constant,
    Definition,
    Deterministic,
    DTYPE,
    kind_of,
    Node,
    NodeKind,
    Stochastic,
    ValueType,
)
from bayesgraph.model.utils import LogLevel


LOGGER = logging.getLogger("bayesgraph.graph")

Snapshot = Dict[str, Tuple[torch.Tensor, torch.Tensor, bool]]


class InitializationInfo(NamedTuple):
    """Nodes whose value or log density is currently undefined."""

    undefined_values: Tuple[str, ...]
    undefined_log_probs: Tuple[str, ...]

    @property
    def complete(self) -> bool:
        return not self.undefined_values and not self.undefined_log_probs


class Graph(Mapping[str, torch.Tensor]):
    """
    A Graph owns every node of a model: the declared relationships between them
    and their current values and log densities. Other components refer to nodes
    by name.

    Nodes must be declared after their parents, so declaration order is always
    a topological order of the graph. Values are float64 tensors; ``NaN`` marks
    an undefined element.

    Example::

        graph = Graph()
        x = Stochastic("normal", loc=0.0, scale=1.0)
        graph.declare_node("x", NodeKind.STOCHASTIC, definition=x)
        y = Stochastic("normal", loc="x", scale=1.0)
        graph.declare_node("y", NodeKind.STOCHASTIC, definition=y)
        graph.mark_as_data("y", {"y": 2.0})
        graph.set_value("x", 0.5)
        graph.calculate()  # log N(0.5 | 0, 1) + log N(2 | 0.5, 1)

    Args:
        options: Configuration shared with the samplers built on this graph.
    """

    def __init__(self, options: Optional[Options] = None):
        self.options: Options = options or DEFAULT_OPTIONS
        self._nodes: Dict[str, Node] = {}
        self._bindings: Dict[str, Dict[str, Binding]] = {}
        self.topology_version: int = 0
        self._resolver = DependencyResolver(self)
        self._running: Optional[str] = None
        self._data_locked = False

    # mapping interface =======================================================

    def __getitem__(self, name: str) -> torch.Tensor:
        return self.get_node(name).value

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __repr__(self) -> str:
        return f"Graph({len(self)} nodes, {len(self.stochastic_nodes)} stochastic)"

    def get_node(self, name: str) -> Node:
        try:
            return self._nodes[name]
        except KeyError:
            raise UnknownNodeError(name) from None

    @property
    def nodes(self) -> Tuple[str, ...]:
        return tuple(self._nodes)

    @property
    def stochastic_nodes(self) -> Tuple[str, ...]:
        return tuple(n.name for n in self._nodes.values() if n.is_stochastic)

    @property
    def deterministic_nodes(self) -> Tuple[str, ...]:
        return tuple(n.name for n in self._nodes.values() if n.is_deterministic)

    @property
    def data_nodes(self) -> Tuple[str, ...]:
        return tuple(n.name for n in self._nodes.values() if n.is_data)

    @property
    def latent_nodes(self) -> Tuple[str, ...]:
        """Stochastic nodes that are not data, the nodes inference updates."""
        return tuple(
            n.name for n in self._nodes.values() if n.is_stochastic and not n.is_data
        )

    def expand_node_names(self, names: NodeNames) -> Tuple[str, ...]:
        """
        Resolve ``names`` to declared node names in topological order. A name
        that is not declared itself expands to every element declared as
        ``name[...]``, so ``"beta"`` covers ``"beta[1]"``, ``"beta[2]"``, ...
        """
        if isinstance(names, str):
            names = [names]
        found: Dict[str, Node] = {}
        for name in names:
            if name in self._nodes:
                found[name] = self._nodes[name]
                continue
            prefix = re.escape(name) + r"\["
            elements = [n for key, n in self._nodes.items() if re.match(prefix, key)]
            if not elements:
                raise UnknownNodeError(name)
            found.update((n.name, n) for n in elements)
        return tuple(sorted(found, key=lambda key: found[key].index))

    # construction ============================================================

    def declare_node(
        self,
        name: str,
        kind: NodeKind,
        dims: Optional[Sequence[int]] = None,
        definition: Optional[Definition] = None,
        value_type: Optional[ValueType] = None,
        value=None,
    ) -> Node:
        """
        Register a node. Parents referenced by ``definition`` must already be
        declared.

        Args:
            name: Unique identifier of the node.
            kind: Kind of the node, must agree with ``definition``.
            dims: Declared shape. Inferred from the definition when omitted; a
                stochastic node may declare a larger shape its parameters
                broadcast to.
            definition: ``Stochastic``, ``Deterministic`` or ``Constant``. A
                constant may pass ``value`` instead.
            value_type: ``REAL`` or ``INTEGER``; defaults from the family for
                stochastic nodes and from the value for constants.
            value: Initial value (required for constants without definition).

        Returns:
            The newly declared node.
        """
        if self._running is not None:
            raise TopologyLockedError(
                f"{self._running}: cannot declare node '{name}' during a run stage."
            )
        if name in self._nodes:
            raise DuplicateNodeError(name)
        if definition is None:
            if kind is not NodeKind.CONSTANT:
                raise ConstructionError(f"Node '{name}' requires a definition.")
            definition = Constant(value)
            value = None
        if kind_of(definition) is not kind:
            raise ConstructionError(
                f"Node '{name}' is declared {kind.value} but defined as "
                f"{kind_of(definition).value}."
            )

        family = None
        parents: Tuple[str, ...] = ()
        if isinstance(definition, Constant):
            const = _as_value(name, definition.value)
            shape = self._check_dims(name, const.shape, dims, exact=True)
            if value_type is None:
                value_type = _infer_value_type(definition.value)
        elif isinstance(definition, Deterministic):
            parents = self._check_parents(name, definition.parents)
            shape = self._check_dims(
                name, self._deterministic_shape(name, definition), dims, exact=True
            )
            value_type = value_type or ValueType.REAL
        else:
            family = get_family(definition.family)
            parents = self._check_parents(name, definition.parents)
            bindings = self._bind_params(
                name, family.complete_params(definition.param_dict())
            )
            shapes = {
                param: (
                    self._nodes[bound].shape if isinstance(bound, str) else bound.shape
                )
                for param, bound in bindings.items()
            }
            shape = self._check_dims(name, family.dimensions(shapes), dims, exact=False)
            value_type = value_type or family.value_type
            self._bindings[name] = bindings

        node = Node(
            name=name,
            kind=kind,
            definition=definition,
            shape=shape,
            value_type=value_type,
            index=len(self._nodes),
            value=torch.full(shape, float("nan"), dtype=DTYPE),
            log_prob=torch.tensor(
                float("nan") if kind is NodeKind.STOCHASTIC else 0.0, dtype=DTYPE
            ),
            parents=parents,
            family=family,
        )
        self._nodes[name] = node
        for parent in parents:
            self._nodes[parent].children.append(name)
        self.topology_version += 1

        if isinstance(definition, Constant):
            self._write(node, self._validate(node, definition.value))
        if value is not None:
            self.set_value(name, value)

        LOGGER.log(
            LogLevel.DEBUG_GRAPH.value,
            "Declared {k} node {n} with shape {s} and parents {p}".format(
                k=kind.value, n=name, s=tuple(shape), p=list(parents)
            ),
        )
        return node

    def _check_parents(self, name: str, parents: Sequence[str]) -> Tuple[str, ...]:
        for parent in parents:
            if parent == name:
                raise CyclicGraphError([name])
            if parent not in self._nodes:
                raise UnknownNodeError(parent, referenced_by=name)
        return tuple(parents)

    def _bind_params(
        self, name: str, params: Mapping[str, object]
    ) -> Dict[str, Binding]:
        bindings: Dict[str, Binding] = {}
        for param, bound in params.items():
            if isinstance(bound, str):
                bindings[param] = bound
            else:
                bindings[param] = _as_value(name, bound)
        return bindings

    def _deterministic_shape(self, name: str, definition: Deterministic) -> torch.Size:
        placeholders = [
            torch.zeros(self._nodes[p].shape, dtype=DTYPE) for p in definition.parents
        ]
        try:
            out = torch.as_tensor(definition.fn(*placeholders))
        except (RuntimeError, ValueError, TypeError, IndexError) as e:
            raise DimensionError(
                f"Definition of node '{name}' cannot be evaluated on parents of "
                f"shapes {[tuple(p.shape) for p in placeholders]}: {e}"
            ) from e
        return out.shape

    @staticmethod
    def _check_dims(
        name: str,
        inferred: torch.Size,
        dims: Optional[Sequence[int]],
        exact: bool,
    ) -> torch.Size:
        if dims is None:
            return torch.Size(inferred)
        declared = torch.Size(dims)
        if declared == inferred:
            return declared
        if not exact:
            try:
                if torch.broadcast_shapes(inferred, declared) == declared:
                    return declared
            except RuntimeError:
                pass
        raise DimensionError(
            f"Node '{name}' is declared with shape {tuple(declared)} but its "
            f"definition has shape {tuple(inferred)}."
        )

    # values ==================================================================

    def set_value(self, name: str, value) -> None:
        """
        Assign a value to a node. The value must match the node's shape (a
        scalar is accepted for single-element nodes) and value type.
        """
        node = self.get_node(name)
        if node.is_constant:
            raise ConstantNodeError(name)
        if node.is_data and self._data_locked:
            raise DataNodeError(
                [name], action="be reassigned once inference has started"
            )
        self._write(node, self._validate(node, value))

    def set_values(self, values: Mapping[str, object]) -> None:
        for name, value in values.items():
            self.set_value(name, value)

    def _validate(self, node: Node, value) -> torch.Tensor:
        try:
            tensor = _as_value(node.name, value)
        except DimensionError as e:
            raise TypeMismatchError(str(e)) from e
        if tensor.shape != node.shape:
            if tensor.numel() == node.numel == 1:
                tensor = tensor.reshape(node.shape)
            else:
                raise TypeMismatchError(
                    f"Node '{node.name}' has shape {tuple(node.shape)}; "
                    f"got a value of shape {tuple(tensor.shape)}."
                )
        if node.value_type is ValueType.INTEGER:
            defined = tensor[~torch.isnan(tensor)]
            if not torch.equal(defined, torch.round(defined)):
                raise TypeMismatchError(
                    f"Node '{node.name}' holds integers; got non-integral values."
                )
        return tensor

    @staticmethod
    def _write(node: Node, value: torch.Tensor) -> None:
        # values are replaced, never modified in place, so snapshots may keep
        # references to them
        node.value = value
        node.assigned = True

    def values(self, names: Optional[NodeNames] = None) -> Dict[str, torch.Tensor]:
        names = self.nodes if names is None else self.expand_node_names(names)
        return {name: self._nodes[name].value for name in names}

    def mark_as_data(
        self, names: NodeNames, values: Optional[Mapping[str, object]] = None
    ) -> None:
        """
        Flag stochastic nodes as data. Data nodes are never updated by samplers
        and can only be reassigned until inference starts.

        Args:
            names: Nodes to flag.
            values: Optional values to assign to the nodes first.
        """
        names = self.expand_node_names(names)
        for name in names:
            node = self._nodes[name]
            if not node.is_stochastic:
                raise ConstructionError(
                    f"Only stochastic nodes can be data; '{name}' is {node.kind.value}."
                )
        for name, value in (values or {}).items():
            if name not in names:
                raise ConstructionError(
                    f"Value given for '{name}' which is not marked as data."
                )
            self.set_value(name, value)
        for name in names:
            self._nodes[name].is_data = True
        self.topology_version += 1
        LOGGER.log(LogLevel.DEBUG_GRAPH.value, f"Marked as data: {list(names)}")

    def lock_data(self) -> None:
        """Prevent any further reassignment of data nodes."""
        self._data_locked = True

    @property
    def data_locked(self) -> bool:
        return self._data_locked

    # log densities ===========================================================

    def parameters(self, name: str) -> Dict[str, torch.Tensor]:
        """Current parameter values of a stochastic node."""
        return resolve_params(
            self._bindings[name],
            {p: self._nodes[p].value for p in self.get_node(name).parents},
        )

    def bindings(self, name: str) -> Dict[str, Binding]:
        """Parameter bindings of a stochastic node: parent names or literals."""
        return dict(self._bindings[name])

    def distribution(self, name: str) -> dist.Distribution:
        """The node's distribution at the current parent values, expanded to the
        node's shape."""
        node = self.get_node(name)
        d = node.family.distribution(self.parameters(name))
        batch_shape = node.shape[: len(node.shape) - node.family.event_dim]
        return d if d.batch_shape == batch_shape else d.expand(batch_shape)

    def calculation_order(self, names: Optional[NodeNames] = None) -> Tuple[str, ...]:
        """
        Nodes ``calculate(names)`` evaluates, in order: the requested nodes
        plus the deterministic nodes lying between them.
        """
        if names is None:
            return self.nodes
        requested = self.expand_node_names(names)
        below = {
            n
            for n in self._deterministic_closure(requested, downstream=True)
        }
        above = {
            n
            for n in self._deterministic_closure(requested, downstream=False)
        }
        return self._resolver.topological_order(
            list(requested) + sorted(below & above)
        )

    def _deterministic_closure(
        self, names: Sequence[str], downstream: bool
    ) -> List[str]:
        reached: List[str] = []
        frontier = list(names)
        while frontier:
            node = self._nodes[frontier.pop()]
            for name in node.children if downstream else node.parents:
                if self._nodes[name].is_deterministic and name not in reached:
                    reached.append(name)
                    frontier.append(name)
        return reached

    def calculate(self, names: Optional[NodeNames] = None) -> torch.Tensor:
        """
        Recompute deterministic values and stochastic log densities of
        ``names`` (all nodes if None) and of the deterministic nodes between
        them, parents first.

        Returns:
            The summed log density of the stochastic nodes evaluated. ``NaN``
            if any of them has undefined inputs, ``-inf`` if a value lies
            outside its support.
        """
        total = torch.zeros((), dtype=DTYPE)
        for name in self.calculation_order(names):
            total = total + self._evaluate(self._nodes[name])
        return total

    def _evaluate(self, node: Node) -> torch.Tensor:
        if node.is_deterministic:
            parent_values = [self._nodes[p].value for p in node.parents]
            self._write(node, evaluate_deterministic(node.definition, parent_values))
            return torch.zeros((), dtype=DTYPE)
        if node.is_stochastic:
            node.log_prob = node.family.log_density(
                node.value, self.parameters(node.name)
            )
            return node.log_prob
        return torch.zeros((), dtype=DTYPE)

    def get_log_prob(self, names: Optional[NodeNames] = None) -> torch.Tensor:
        """Sum of the cached log densities of the stochastic nodes among
        ``names`` (all nodes if None), without recomputation."""
        names = self.nodes if names is None else self.expand_node_names(names)
        total = torch.zeros((), dtype=DTYPE)
        for name in names:
            node = self._nodes[name]
            if node.is_stochastic:
                total = total + node.log_prob
        return total

    def store(
        self,
        name: str,
        value: Optional[torch.Tensor] = None,
        log_prob: Optional[torch.Tensor] = None,
    ) -> None:
        """Write back results computed outside of ``calculate``, skipping
        validation."""
        node = self.get_node(name)
        if value is not None:
            self._write(node, value.reshape(node.shape))
        if log_prob is not None:
            node.log_prob = log_prob

    # simulation and initialization ==========================================

    def simulate(
        self, names: Optional[NodeNames] = None, include_data: bool = False
    ) -> None:
        """
        Draw new values for the stochastic nodes among ``names`` (all latent
        nodes if None) from their distributions given their parents, updating
        deterministic nodes in between. Log densities are not recomputed.

        Data nodes are left alone unless ``include_data`` is set, in which case
        the default covers every stochastic node.
        """
        if names is None:
            names = self.stochastic_nodes if include_data else self.latent_nodes
        order = self.calculation_order(names)
        for name in order:
            node = self._nodes[name]
            if node.is_deterministic:
                self._evaluate(node)
            elif node.is_stochastic and (include_data or not node.is_data):
                params = self.parameters(name)
                if bool(any_undefined(list(params.values()))):
                    self._write(node, torch.full(node.shape, float("nan"), dtype=DTYPE))
                else:
                    self._write(node, node.family.sample(params, node.shape))

    def initialize(
        self,
        inits: Optional[Mapping[str, object]] = None,
        initialize_fn: InitializeFn = init_from_prior,
    ) -> InitializationInfo:
        """
        Assign ``inits``, fill every latent node that was never assigned with
        ``initialize_fn`` (parents first), then recalculate the whole graph.

        Nodes whose parents are undefined stay undefined; they are reported in
        the returned diagnostics rather than raising.
        """
        if inits:
            self.set_values(inits)
        for node in self._nodes.values():
            if node.is_deterministic:
                self._evaluate(node)
            elif node.is_stochastic and not node.is_data and not node.assigned:
                params = self.parameters(node.name)
                if not bool(any_undefined(list(params.values()))):
                    value = initialize_fn(self, node.name)
                    self._write(node, self._validate(node, value))
        self.calculate()
        return self.initialize_info()

    def initialize_info(self, warn: bool = True) -> InitializationInfo:
        """
        Report nodes whose value or log density is currently undefined. Partial
        initialization is legal, so this emits an ``InitializationWarning``
        instead of raising.
        """
        undefined_values = tuple(
            n.name
            for n in self._nodes.values()
            if not n.is_constant and bool(torch.isnan(n.value).any())
        )
        undefined_log_probs = tuple(
            n.name
            for n in self._nodes.values()
            if n.is_stochastic and bool(torch.isnan(n.log_prob))
        )
        info = InitializationInfo(undefined_values, undefined_log_probs)
        if warn and not info.complete:
            msg = (
                "Graph is not fully initialized. "
                f"Undefined values: {list(undefined_values)}; "
                f"undefined log densities: {list(undefined_log_probs)}."
            )
            LOGGER.warning(msg)
            warnings.warn(msg, InitializationWarning, stacklevel=2)
        return info

    # state ===================================================================

    def snapshot(self, names: NodeNames) -> Snapshot:
        """Save values and log densities of ``names`` for an exact ``restore``."""
        return {
            name: (node.value, node.log_prob, node.assigned)
            for name, node in (
                (n, self._nodes[n]) for n in self.expand_node_names(names)
            )
        }

    def restore(self, snapshot: Snapshot) -> None:
        for name, (value, log_prob, assigned) in snapshot.items():
            node = self._nodes[name]
            node.value = value
            node.log_prob = log_prob
            node.assigned = assigned

    def copy(self) -> Graph:
        """
        Returns:
            A graph with the same topology and definitions whose values and log
            densities are independent of this one.
        """
        graph_copy = Graph(self.options)
        graph_copy._nodes = {
            name: node.copy_state() for name, node in self._nodes.items()
        }
        graph_copy._bindings = dict(self._bindings)
        graph_copy.topology_version = self.topology_version
        graph_copy._resolver = DependencyResolver(graph_copy)
        graph_copy._data_locked = self._data_locked
        return graph_copy

    # dependencies ============================================================

    def get_dependencies(self, names: NodeNames, **kwargs) -> Tuple[str, ...]:
        """See ``DependencyResolver.get_dependencies``."""
        return self._resolver.get_dependencies(names, **kwargs)

    def topological_order(self, names: Iterable[str]) -> Tuple[str, ...]:
        return self._resolver.topological_order(names)

    @contextlib.contextmanager
    def topology_locked(self, owner: str):
        """Forbid topology changes while ``owner`` runs."""
        previous = self._running
        self._running = owner
        try:
            yield self
        finally:
            self._running = previous

    # visualization ===========================================================

    def to_dot(self, **kwargs) -> str:
        from bayesgraph.model.dot import to_dot

        return to_dot(self, **kwargs)

    def to_graphviz(self, **kwargs):
        from bayesgraph.model.dot import to_graphviz

        return to_graphviz(self, **kwargs)


def _as_value(name: str, value) -> torch.Tensor:
    if value is None:
        raise DimensionError(f"Node '{name}' requires a value.")
    try:
        tensor = torch.as_tensor(value)
    except (TypeError, ValueError, RuntimeError) as e:
        raise DimensionError(f"Value for node '{name}' is not numeric: {e}") from e
    if not (tensor.is_floating_point() or tensor.dtype in _INTEGRAL_DTYPES):
        raise DimensionError(
            f"Value for node '{name}' has unsupported dtype {tensor.dtype}."
        )
    return tensor.to(DTYPE).clone()


_INTEGRAL_DTYPES = (
    torch.bool,
    torch.uint8,
    torch.int8,
    torch.int16,
    torch.int32,
    torch.int64,
)


def _infer_value_type(value) -> ValueType:
    tensor = torch.as_tensor(value)
    return ValueType.REAL if tensor.is_floating_point() else ValueType.INTEGER

