"""
Core data models for the flowchart text model.

Every entity here is a derived view over the text buffer:
- Nodes recovered from bracketed declarations (or bare edge references)
- Edges recovered from arrow lines
- Subgraphs recovered from subgraph/end spans
- Style directives recovered from `style <id> ...` lines

Field Naming Convention:
- Edges use `source` and `target`
- For compatibility with the editor front-end, `from`/`to` are accepted
  on input and converted
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field, model_validator


class NodeShape(str, Enum):
    """Visual shapes a node declaration can take."""
    RECTANGLE = "rectangle"
    ROUNDED = "rounded"
    STADIUM = "stadium"
    DIAMOND = "diamond"
    HEXAGON = "hexagon"
    PARALLELOGRAM = "parallelogram"
    CIRCLE = "circle"


class ArrowType(str, Enum):
    """Canonical arrow glyphs written by the editor."""
    ARROW = "-->"
    LONG = "--->"
    DOTTED = "-.->"
    THICK = "==>"


class FlowDirection(str, Enum):
    """Layout directions accepted in the flowchart header."""
    LR = "LR"
    RL = "RL"
    TB = "TB"
    BT = "BT"


# Canonical open/close pair written for each shape
SHAPE_BRACKETS: dict[NodeShape, tuple[str, str]] = {
    NodeShape.RECTANGLE: ("[", "]"),
    NodeShape.ROUNDED: ("(", ")"),
    NodeShape.STADIUM: ("([", "])"),
    NodeShape.DIAMOND: ("{", "}"),
    NodeShape.HEXAGON: ("{{", "}}"),
    NodeShape.PARALLELOGRAM: ("[/", "/]"),
    NodeShape.CIRCLE: ("((", "))"),
}

# Every opener the scanner recognises, longest first.
# Non-canonical pairs map onto the nearest enumerated shape.
BRACKET_PAIRS: list[tuple[str, str, NodeShape]] = [
    ("([", "])", NodeShape.STADIUM),
    ("[(", ")]", NodeShape.ROUNDED),
    ("[[", "]]", NodeShape.RECTANGLE),
    ("((", "))", NodeShape.CIRCLE),
    ("{{", "}}", NodeShape.HEXAGON),
    ("[/", "/]", NodeShape.PARALLELOGRAM),
    ("[\\", "\\]", NodeShape.PARALLELOGRAM),
    ("[", "]", NodeShape.RECTANGLE),
    ("(", ")", NodeShape.ROUNDED),
    ("{", "}", NodeShape.DIAMOND),
    (">", "]", NodeShape.RECTANGLE),
]

CLOSING_BRACKETS: dict[str, str] = {opener: closer for opener, closer, _ in BRACKET_PAIRS}
OPENER_SHAPES: dict[str, NodeShape] = {opener: shape for opener, _, shape in BRACKET_PAIRS}

# Words that look like identifiers but belong to the DSL itself
RESERVED_WORDS = frozenset({
    "flowchart", "graph", "subgraph", "end", "style", "classdef",
    "class", "click", "linkstyle", "direction",
})

# One indentation unit, as written by the editor
INDENT = "    "

DEFAULT_CODE = """flowchart LR
    A[Start] --> B{Decision}
    B -->|Yes| C[Process]
    B -->|No| D[End]
    C --> D"""


class ParsedNode(BaseModel):
    """A node recovered from the buffer."""
    id: str
    label: str
    shape: NodeShape = NodeShape.RECTANGLE
    line_index: int = -1  # -1 for nodes that are only referenced by edges


class EdgeInfo(BaseModel):
    """
    An edge recovered from one line of the buffer.

    Two EdgeInfo values are the same edge when every field matches; the
    line index makes the identity stale as soon as the buffer changes.
    """
    source: str
    target: str
    label: str = ""
    arrow_type: ArrowType = ArrowType.ARROW
    line_index: int

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert 'from'/'to' (and camelCase keys) to field names."""
        if isinstance(data, dict):
            data = dict(data)
            if 'from' in data and 'source' not in data:
                data['source'] = data.pop('from')
            if 'to' in data and 'target' not in data:
                data['target'] = data.pop('to')
            if 'arrowType' in data and 'arrow_type' not in data:
                data['arrow_type'] = data.pop('arrowType')
            if 'lineIndex' in data and 'line_index' not in data:
                data['line_index'] = data.pop('lineIndex')
        return data


class Subgraph(BaseModel):
    """A subgraph span; `line_end` is the index of its `end` line."""
    id: str
    title: str
    nodes: list[str] = Field(default_factory=list)
    line_start: int
    line_end: int

    def contains_line(self, index: int) -> bool:
        """True when `index` lies strictly between the open and end lines."""
        return self.line_start < index < self.line_end


class NodeStyle(BaseModel):
    """Style properties for a node or subgraph. Unset fields are None."""
    fill: Optional[str] = None
    stroke: Optional[str] = None
    stroke_width: Optional[int] = None
    color: Optional[str] = None
    rx: Optional[int] = None


# Mermaid default theme colors
DEFAULT_NODE_STYLE = NodeStyle(
    fill="#ECECFF",
    stroke="#9370DB",
    stroke_width=2,
    color="#333333",
    rx=5,
)


class TextLocation(BaseModel):
    """A 0-based line/column position used to reveal an entity in the editor."""
    line: int
    column: int = 0


# --- API Request/Response Models ---

class SetCodeRequest(BaseModel):
    """Request to replace the whole buffer."""
    code: str
    record_history: bool = True


class DirectionRequest(BaseModel):
    direction: FlowDirection


class InsertNodeRequest(BaseModel):
    """Request to insert a node after an anchor node."""
    anchor_id: str
    label: str = "New Node"
    shape: NodeShape = NodeShape.RECTANGLE
    node_id: Optional[str] = None  # allocated when omitted


class UpdateNodeRequest(BaseModel):
    """Request to update a node's label and/or shape."""
    label: Optional[str] = None
    shape: Optional[NodeShape] = None


class CreateEdgeRequest(BaseModel):
    """Request to append a new connection."""
    source: str
    target: str
    label: Optional[str] = None
    arrow_type: ArrowType = ArrowType.ARROW

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if 'from' in data and 'source' not in data:
                data['source'] = data.pop('from')
            if 'to' in data and 'target' not in data:
                data['target'] = data.pop('to')
        return data


class UpdateEdgeRequest(BaseModel):
    """Request to update the label and/or arrow of a previously scanned edge."""
    edge: EdgeInfo
    label: Optional[str] = None
    arrow_type: Optional[ArrowType] = None


class EdgeRequest(BaseModel):
    edge: EdgeInfo


class CreateSubgraphRequest(BaseModel):
    id: str
    title: str = ""
    node_ids: list[str] = Field(default_factory=list)


class UpdateSubgraphRequest(BaseModel):
    title: str


class SelectionRequest(BaseModel):
    """Select a node, an edge or a group; all empty clears the selection."""
    node_id: Optional[str] = None
    edge: Optional[EdgeInfo] = None
    group_id: Optional[str] = None


class RenderResultRequest(BaseModel):
    """Outcome reported by the rendering collaborator."""
    error: Optional[str] = None


class ResolveElementRequest(BaseModel):
    element_id: str
