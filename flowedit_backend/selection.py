"""
Selection - The single entity currently active for editing.
"""

from enum import Enum
from typing import Optional

from flowedit_core.models import EdgeInfo


class SelectionKind(str, Enum):
    NONE = "none"
    NODE = "node"
    EDGE = "edge"
    GROUP = "group"


class Selection:
    """
    Holds at most one of: a node id, an edge value, a group id.

    Selecting one kind clears the others. Passing None to a setter clears
    the whole selection.
    """

    def __init__(self):
        self._kind = SelectionKind.NONE
        self._node_id: Optional[str] = None
        self._edge: Optional[EdgeInfo] = None
        self._group_id: Optional[str] = None

    @property
    def kind(self) -> SelectionKind:
        return self._kind

    @property
    def node_id(self) -> Optional[str]:
        return self._node_id

    @property
    def edge(self) -> Optional[EdgeInfo]:
        return self._edge

    @property
    def group_id(self) -> Optional[str]:
        return self._group_id

    def clear(self) -> None:
        self._kind = SelectionKind.NONE
        self._node_id = None
        self._edge = None
        self._group_id = None

    def select_node(self, node_id: Optional[str]) -> None:
        self.clear()
        if node_id is not None:
            self._kind = SelectionKind.NODE
            self._node_id = node_id

    def select_edge(self, edge: Optional[EdgeInfo]) -> None:
        self.clear()
        if edge is not None:
            self._kind = SelectionKind.EDGE
            self._edge = edge

    def select_group(self, group_id: Optional[str]) -> None:
        self.clear()
        if group_id is not None:
            self._kind = SelectionKind.GROUP
            self._group_id = group_id

    def is_node(self, node_id: str) -> bool:
        return self._kind == SelectionKind.NODE and self._node_id == node_id

    def is_edge(self, edge: EdgeInfo) -> bool:
        return self._kind == SelectionKind.EDGE and self._edge == edge

    def is_group(self, group_id: str) -> bool:
        return self._kind == SelectionKind.GROUP and self._group_id == group_id

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "kind": self._kind.value,
            "node_id": self._node_id,
            "edge": self._edge.model_dump(mode="json") if self._edge else None,
            "group_id": self._group_id,
        }
