"""
Network topology for the queueing network simulator.

A network is an ordered list of node configurations plus weighted directed
connections between them. It is read-only while runs are in progress and
is shared (by pickling) with worker processes.
"""

from collections.abc import Iterator
from dataclasses import dataclass

from .errors import ConfigurationError
from .node import NodeConfig, NodeState


@dataclass(frozen=True)
class Connection:
    """A weighted edge to a child node.

    Attributes:
        index: Index of the child node.
        weight: Relative routing weight (> 0).
    """

    index: int
    weight: float

    def __repr__(self) -> str:
        return f"Connection(to={self.index}, weight={self.weight})"


class Network:
    """Named nodes and the weighted connections between them."""

    def __init__(self) -> None:
        self._nodes: list[NodeConfig] = []
        self._indices: dict[str, int] = {}
        self._connections: list[list[Connection]] = []

    def add_node(self, node: NodeConfig) -> int:
        """Add a node and return its index.

        Raises:
            ConfigurationError: If a node with the same name exists.
        """
        if node.name in self._indices:
            raise ConfigurationError(f"Node {node.name!r} already exists")
        index = len(self._nodes)
        self._nodes.append(node)
        self._indices[node.name] = index
        self._connections.append([])
        return index

    def add_connection(self, parent: int | str, child: int | str, weight: float) -> None:
        """Connect ``parent`` to ``child``, replacing any existing edge.

        Args:
            parent: Index or name of the source node.
            child: Index or name of the target node.
            weight: Routing weight. Must be positive.

        Raises:
            ConfigurationError: If the weight is not positive or a node does
                not exist.
        """
        if weight <= 0:
            raise ConfigurationError(f"Connection weight must be positive, got {weight}")
        parent_index = self._resolve(parent)
        child_index = self._resolve(child)

        edges = [conn for conn in self._connections[parent_index] if conn.index != child_index]
        edges.append(Connection(child_index, float(weight)))
        self._connections[parent_index] = edges

    def _resolve(self, node: int | str) -> int:
        if isinstance(node, str):
            return self.index_of(node)
        if not 0 <= node < len(self._nodes):
            raise ConfigurationError(f"Node index {node} does not exist")
        return node

    @property
    def size(self) -> int:
        return len(self._nodes)

    def index_of(self, name: str) -> int:
        """Index of the node called ``name``.

        Raises:
            ConfigurationError: If no node has that name.
        """
        try:
            return self._indices[name]
        except KeyError:
            raise ConfigurationError(f"Unknown node {name!r}") from None

    def node(self, index: int) -> NodeConfig:
        return self._nodes[self._resolve(index)]

    def node_by_name(self, name: str) -> NodeConfig:
        return self._nodes[self.index_of(name)]

    def has_node(self, name: str) -> bool:
        return name in self._indices

    def children(self, index: int | str) -> list[Connection]:
        """Copy of the outgoing connections of a node."""
        return list(self._connections[self._resolve(index)])

    def normalize_weights(self) -> None:
        """Rescale each node's outgoing weights to sum to 1."""
        for index, edges in enumerate(self._connections):
            total = sum(conn.weight for conn in edges)
            self._connections[index] = [Connection(conn.index, conn.weight / total) for conn in edges]

    def build_node_states(self) -> list[NodeState]:
        """Fresh runtime state for every node, in index order."""
        return [
            NodeState(index, config, self.children(index))
            for index, config in enumerate(self._nodes)
        ]

    def describe(self) -> str:
        """Multi-line text listing every node and its outgoing edges."""
        lines = []
        for index, node in enumerate(self._nodes):
            edges = ", ".join(
                f"{self._nodes[conn.index].name}({conn.weight})" for conn in self._connections[index]
            )
            lines.append(f"{node.describe()} -> {edges}" if edges else f"{node.describe()} -")
        return "\n".join(lines)

    def __iter__(self) -> Iterator[NodeConfig]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        names = ", ".join(node.name for node in self._nodes)
        return f"Network({names})"
