"""
Flowedit Core - Text model for flowchart DSL editing.

This package keeps the DSL text as the single source of truth. Entities
are recovered from it by scanning, and structural edits are applied as
text rewrites that leave untouched lines byte-identical. It performs no
I/O and holds no state; the backend composes it with history, selection
and persistence.
"""

from .models import (
    # Enums
    NodeShape,
    ArrowType,
    FlowDirection,
    # Entities
    ParsedNode,
    EdgeInfo,
    Subgraph,
    NodeStyle,
    TextLocation,
    # Constants
    DEFAULT_CODE,
    DEFAULT_NODE_STYLE,
    SHAPE_BRACKETS,
    INDENT,
    # Request models (for API)
    SetCodeRequest,
    DirectionRequest,
    InsertNodeRequest,
    UpdateNodeRequest,
    CreateEdgeRequest,
    UpdateEdgeRequest,
    EdgeRequest,
    CreateSubgraphRequest,
    UpdateSubgraphRequest,
    SelectionRequest,
    RenderResultRequest,
    ResolveElementRequest,
)

from .scanner import (
    scan_nodes,
    scan_edges,
    scan_subgraphs,
    scan_styles,
    scan_node_ids,
    get_direction,
    extract_target_id,
    locate_node,
    locate_edge,
)
from .styles import parse_style_line, format_style_value, merge_styles
from .allocator import next_id
from .mutations import (
    set_direction,
    insert_node_after,
    add_connection,
    delete_node,
    delete_edge,
    update_node_label,
    update_node_shape,
    update_edge_label,
    update_edge_arrow_type,
    duplicate_node,
    insert_subgraph,
    update_subgraph_title,
    delete_subgraph,
    add_node_to_subgraph,
    remove_node_from_subgraph,
    update_node_style,
    update_subgraph_style,
)
from .analysis import summarize_diagram, DiagramSummary

__all__ = [
    # Enums
    "NodeShape",
    "ArrowType",
    "FlowDirection",
    # Entities
    "ParsedNode",
    "EdgeInfo",
    "Subgraph",
    "NodeStyle",
    "TextLocation",
    # Constants
    "DEFAULT_CODE",
    "DEFAULT_NODE_STYLE",
    "SHAPE_BRACKETS",
    "INDENT",
    # Request models
    "SetCodeRequest",
    "DirectionRequest",
    "InsertNodeRequest",
    "UpdateNodeRequest",
    "CreateEdgeRequest",
    "UpdateEdgeRequest",
    "EdgeRequest",
    "CreateSubgraphRequest",
    "UpdateSubgraphRequest",
    "SelectionRequest",
    "RenderResultRequest",
    "ResolveElementRequest",
    # Scanner
    "scan_nodes",
    "scan_edges",
    "scan_subgraphs",
    "scan_styles",
    "scan_node_ids",
    "get_direction",
    "extract_target_id",
    "locate_node",
    "locate_edge",
    # Styles
    "parse_style_line",
    "format_style_value",
    "merge_styles",
    # Allocator
    "next_id",
    # Mutations
    "set_direction",
    "insert_node_after",
    "add_connection",
    "delete_node",
    "delete_edge",
    "update_node_label",
    "update_node_shape",
    "update_edge_label",
    "update_edge_arrow_type",
    "duplicate_node",
    "insert_subgraph",
    "update_subgraph_title",
    "delete_subgraph",
    "add_node_to_subgraph",
    "remove_node_from_subgraph",
    "update_node_style",
    "update_subgraph_style",
    # Analysis
    "summarize_diagram",
    "DiagramSummary",
]
