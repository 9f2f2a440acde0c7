"""
Diagram analysis - Structural summary of the scanned flowchart.

Used by the session and the HTTP adapter to describe the current buffer
without the caller having to combine the individual scans.
"""

from collections import defaultdict
from dataclasses import dataclass, field

from .models import ParsedNode, EdgeInfo
from .scanner import get_direction, scan_edges, scan_nodes, scan_styles, scan_subgraphs


@dataclass
class NodeConnectionInfo:
    """Connection information for a single node."""
    node_id: str
    label: str
    incoming: int = 0   # Edges pointing to this node
    outgoing: int = 0   # Edges pointing from this node

    @property
    def total(self) -> int:
        return self.incoming + self.outgoing


@dataclass
class DiagramSummary:
    """Complete summary of a flowchart's structure."""
    direction: str
    total_nodes: int
    total_edges: int
    total_subgraphs: int
    styled_ids: list[str]
    nodes_by_shape: dict[str, int]
    edges_by_arrow: dict[str, int]
    most_connected_nodes: list[NodeConnectionInfo] = field(default_factory=list)
    orphan_nodes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "direction": self.direction,
            "total_nodes": self.total_nodes,
            "total_edges": self.total_edges,
            "total_subgraphs": self.total_subgraphs,
            "styled_ids": self.styled_ids,
            "nodes_by_shape": self.nodes_by_shape,
            "edges_by_arrow": self.edges_by_arrow,
            "most_connected_nodes": [
                {
                    "id": n.node_id,
                    "label": n.label,
                    "connections": n.total,
                    "incoming": n.incoming,
                    "outgoing": n.outgoing
                }
                for n in self.most_connected_nodes
            ],
            "orphan_nodes": self.orphan_nodes,
        }


def calculate_node_connections(
    nodes: list[ParsedNode],
    edges: list[EdgeInfo],
) -> dict[str, NodeConnectionInfo]:
    """Count incoming and outgoing scanned edges per node."""
    connections: dict[str, NodeConnectionInfo] = {
        node.id: NodeConnectionInfo(node_id=node.id, label=node.label)
        for node in nodes
    }
    for edge in edges:
        if edge.source in connections:
            connections[edge.source].outgoing += 1
        if edge.target in connections:
            connections[edge.target].incoming += 1
    return connections


def summarize_diagram(text: str, top_n: int = 5) -> DiagramSummary:
    """
    Summarize the buffer.

    Edge counts reflect the scanner's one-edge-per-line view, so a node
    reached only through an `&` group or a chained arrow may be reported
    as an orphan.
    """
    nodes = scan_nodes(text)
    edges = scan_edges(text)

    shape_counts: dict[str, int] = defaultdict(int)
    for node in nodes:
        shape_counts[node.shape.value] += 1

    arrow_counts: dict[str, int] = defaultdict(int)
    for edge in edges:
        arrow_counts[edge.arrow_type.value] += 1

    connections = calculate_node_connections(nodes, edges)
    sorted_by_connections = sorted(
        connections.values(),
        key=lambda x: x.total,
        reverse=True
    )

    return DiagramSummary(
        direction=get_direction(text).value,
        total_nodes=len(nodes),
        total_edges=len(edges),
        total_subgraphs=len(scan_subgraphs(text)),
        styled_ids=sorted(scan_styles(text)),
        nodes_by_shape=dict(shape_counts),
        edges_by_arrow=dict(arrow_counts),
        most_connected_nodes=[n for n in sorted_by_connections[:top_n] if n.total > 0],
        orphan_nodes=[n.node_id for n in connections.values() if n.total == 0],
    )
