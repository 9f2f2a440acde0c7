"""
Editor Session - Composition root for one flowchart being edited.

This module implements:
- The authoritative text buffer and its linear undo/redo history
- Selection of a single node, edge or group
- Wrappers around every mutation in flowedit_core, one history entry each
- Explicit style overrides per node (persisted next to the text)
- The last error reported by the rendering collaborator
- JSON file persistence of {code, node_styles}

Nothing here is global: tests and the HTTP adapter each build their own
EditorSession.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, Field, ValidationError

from flowedit_core import mutations
from flowedit_core.analysis import DiagramSummary, summarize_diagram
from flowedit_core.allocator import next_id
from flowedit_core.models import (
    ArrowType,
    EdgeInfo,
    FlowDirection,
    NodeShape,
    NodeStyle,
    ParsedNode,
    Subgraph,
    TextLocation,
    DEFAULT_CODE,
    DEFAULT_NODE_STYLE,
)
from flowedit_core.scanner import (
    extract_target_id,
    find_subgraph,
    get_direction,
    locate_edge,
    locate_node,
    scan_edges,
    scan_node_ids,
    scan_nodes,
    scan_styles,
    scan_subgraphs,
)
from flowedit_core.styles import merge_styles

from .history import HistoryManager, RecordHistory
from .selection import Selection, SelectionKind

logger = logging.getLogger(__name__)


class PersistedState(BaseModel):
    """What survives a restart; everything else is rebuilt from `code`."""
    code: str = DEFAULT_CODE
    node_styles: dict[str, NodeStyle] = Field(default_factory=dict)


class EditorSession:
    """
    Owns the buffer and everything derived from editing it.

    Mutating methods return True (or the new id) when the buffer changed
    and False (or None) when the target could not be found. Change
    listeners are called after every buffer or selection change.
    """

    def __init__(self, code: str = DEFAULT_CODE, max_history: int = 100):
        self._code = code
        self._history = HistoryManager(code, max_history=max_history)
        self._selection = Selection()
        self._node_styles: dict[str, NodeStyle] = {}
        self._render_error: Optional[str] = None
        self._file_path: Optional[Path] = None
        self._dirty = False
        self._on_change_callbacks: list[Callable] = []

    # --- Properties ---

    @property
    def code(self) -> str:
        return self._code

    @property
    def selection(self) -> Selection:
        return self._selection

    @property
    def node_styles(self) -> dict[str, NodeStyle]:
        """Explicit style overrides, keyed by node id."""
        return dict(self._node_styles)

    @property
    def render_error(self) -> Optional[str]:
        return self._render_error

    @property
    def file_path(self) -> Optional[Path]:
        return self._file_path

    @property
    def is_dirty(self) -> bool:
        """Check if there are unsaved changes."""
        return self._dirty

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def direction(self) -> FlowDirection:
        return get_direction(self._code)

    # --- Change Callbacks ---

    def on_change(self, callback: Callable):
        """Register a callback for buffer and selection changes."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self):
        for callback in self._on_change_callbacks:
            callback()

    # --- Buffer ---

    def set_code(self, code: str, record: RecordHistory = RecordHistory.YES) -> bool:
        """
        Replace the buffer.

        With RecordHistory.NO the change is not an undo step. Returns False
        when the text is unchanged.
        """
        if code == self._code:
            return False

        self._code = code
        if record == RecordHistory.YES:
            self._history.commit(code)
        self._dirty = True
        self._revalidate_selection()
        self._notify_change()
        return True

    def _apply(self, new_code: str, action: str) -> bool:
        """Commit the result of a mutation as one history entry."""
        if new_code == self._code:
            logger.info("%s: nothing changed", action)
            return False
        logger.debug("%s", action)
        return self.set_code(new_code)

    def _revalidate_selection(self):
        """Drop a selection whose entity no longer exists in the buffer."""
        kind = self._selection.kind
        if kind == SelectionKind.NODE:
            if self._selection.node_id not in scan_node_ids(self._code):
                self._selection.clear()
        elif kind == SelectionKind.EDGE:
            if self._selection.edge not in scan_edges(self._code):
                self._selection.clear()
        elif kind == SelectionKind.GROUP:
            if find_subgraph(self._code, self._selection.group_id) is None:
                self._selection.clear()

    # --- Undo/Redo ---

    def undo(self) -> Optional[str]:
        """Undo the last recorded change and return the restored text."""
        code = self._history.undo()
        if code is None:
            return None
        self._code = code
        self._dirty = True
        self._revalidate_selection()
        self._notify_change()
        return code

    def redo(self) -> Optional[str]:
        """Redo the last undone change and return the restored text."""
        code = self._history.redo()
        if code is None:
            return None
        self._code = code
        self._dirty = True
        self._revalidate_selection()
        self._notify_change()
        return code

    # --- Selection ---

    def select_node(self, node_id: Optional[str]):
        self._selection.select_node(node_id)
        self._notify_change()

    def select_edge(self, edge: Optional[EdgeInfo]):
        self._selection.select_edge(edge)
        self._notify_change()

    def select_group(self, group_id: Optional[str]):
        self._selection.select_group(group_id)
        self._notify_change()

    def clear_selection(self):
        self._selection.clear()
        self._notify_change()

    # --- Scans ---

    def nodes(self) -> list[ParsedNode]:
        return scan_nodes(self._code)

    def edges(self) -> list[EdgeInfo]:
        return scan_edges(self._code)

    def subgraphs(self) -> list[Subgraph]:
        return scan_subgraphs(self._code)

    def styles(self) -> dict[str, NodeStyle]:
        return scan_styles(self._code)

    def node_ids(self) -> list[str]:
        return scan_node_ids(self._code)

    def next_node_id(self) -> str:
        return next_id(scan_node_ids(self._code))

    def summary(self) -> DiagramSummary:
        return summarize_diagram(self._code)

    def locate_node(self, node_id: str) -> Optional[TextLocation]:
        return locate_node(self._code, node_id)

    def locate_edge(self, edge: EdgeInfo) -> Optional[TextLocation]:
        return locate_edge(self._code, edge)

    def resolve_element(self, element_id: str) -> Optional[str]:
        """Map a rendered element id back to a node id."""
        return extract_target_id(element_id)

    # --- Direction ---

    def set_direction(self, direction: FlowDirection | str) -> bool:
        return self._apply(
            mutations.set_direction(self._code, direction),
            f"set direction {FlowDirection(direction).value}",
        )

    # --- Node Operations ---

    def insert_node_after(
        self,
        anchor_id: str,
        label: str,
        shape: NodeShape | str = NodeShape.RECTANGLE,
        node_id: Optional[str] = None,
    ) -> Optional[str]:
        """Insert a node linked from `anchor_id`. Returns the new id, or None."""
        new_id = node_id or self.next_node_id()
        changed = self._apply(
            mutations.insert_node_after(self._code, anchor_id, new_id, label, shape),
            f"insert node {new_id} after {anchor_id}",
        )
        return new_id if changed else None

    def update_node_label(self, node_id: str, label: str) -> bool:
        return self._apply(
            mutations.update_node_label(self._code, node_id, label),
            f"relabel node {node_id}",
        )

    def update_node_shape(self, node_id: str, shape: NodeShape | str) -> bool:
        return self._apply(
            mutations.update_node_shape(self._code, node_id, shape),
            f"reshape node {node_id}",
        )

    def delete_node(self, node_id: str) -> bool:
        """Delete a node from every link line and drop its style."""
        changed = self._apply(
            mutations.delete_node(self._code, node_id),
            f"delete node {node_id}",
        )
        if changed:
            self._node_styles.pop(node_id, None)
            if self._selection.is_node(node_id):
                self.clear_selection()
        return changed

    def duplicate_node(self, node_id: str) -> Optional[str]:
        """Duplicate a declared node with its edges. Returns the copy's id."""
        code, new_id = mutations.duplicate_node(self._code, node_id)
        if new_id is None:
            logger.info("duplicate node %s: no declaration found", node_id)
            return None
        if node_id in self._node_styles:
            self._node_styles[new_id] = self._node_styles[node_id]
        self._apply(code, f"duplicate node {node_id} as {new_id}")
        return new_id

    # --- Edge Operations ---

    def add_connection(
        self,
        source: str,
        target: str,
        label: Optional[str] = None,
        arrow: ArrowType | str = ArrowType.ARROW,
    ) -> bool:
        return self._apply(
            mutations.add_connection(self._code, source, target, label, arrow),
            f"connect {source} to {target}",
        )

    def delete_edge(self, edge: EdgeInfo) -> bool:
        changed = self._apply(
            mutations.delete_edge(self._code, edge),
            f"delete edge {edge.source}->{edge.target}",
        )
        # A later identical line may have shifted into the deleted slot
        if changed and self._selection.is_edge(edge):
            self.clear_selection()
        return changed

    def _reselect_edge_at(self, line_index: int):
        for edge in scan_edges(self._code):
            if edge.line_index == line_index:
                self.select_edge(edge)
                return

    def update_edge_label(self, edge: EdgeInfo, label: str) -> bool:
        was_selected = self._selection.is_edge(edge)
        changed = self._apply(
            mutations.update_edge_label(self._code, edge, label),
            f"relabel edge {edge.source}->{edge.target}",
        )
        if changed and was_selected:
            self._reselect_edge_at(edge.line_index)
        return changed

    def update_edge_arrow_type(self, edge: EdgeInfo, arrow: ArrowType | str) -> bool:
        was_selected = self._selection.is_edge(edge)
        changed = self._apply(
            mutations.update_edge_arrow_type(self._code, edge, arrow),
            f"change arrow of edge {edge.source}->{edge.target}",
        )
        if changed and was_selected:
            self._reselect_edge_at(edge.line_index)
        return changed

    # --- Subgraph Operations ---

    def insert_subgraph(
        self,
        subgraph_id: str,
        title: str = "",
        node_ids: Optional[list[str]] = None,
    ) -> bool:
        return self._apply(
            mutations.insert_subgraph(self._code, subgraph_id, title, node_ids),
            f"insert subgraph {subgraph_id}",
        )

    def update_subgraph_title(self, subgraph_id: str, title: str) -> bool:
        return self._apply(
            mutations.update_subgraph_title(self._code, subgraph_id, title),
            f"retitle subgraph {subgraph_id}",
        )

    def delete_subgraph(self, subgraph_id: str) -> bool:
        changed = self._apply(
            mutations.delete_subgraph(self._code, subgraph_id),
            f"delete subgraph {subgraph_id}",
        )
        if changed and self._selection.is_group(subgraph_id):
            self.clear_selection()
        return changed

    def add_node_to_subgraph(self, subgraph_id: str, node_id: str) -> bool:
        return self._apply(
            mutations.add_node_to_subgraph(self._code, subgraph_id, node_id),
            f"add {node_id} to subgraph {subgraph_id}",
        )

    def remove_node_from_subgraph(self, subgraph_id: str, node_id: str) -> bool:
        return self._apply(
            mutations.remove_node_from_subgraph(self._code, subgraph_id, node_id),
            f"remove {node_id} from subgraph {subgraph_id}",
        )

    # --- Styles ---

    def update_node_style(self, node_id: str, style: NodeStyle) -> bool:
        """Merge `style` into the node's overrides and its style directive."""
        previous = self._node_styles.get(node_id, NodeStyle())
        overrides = merge_styles(previous, style)
        self._node_styles[node_id] = overrides
        changed = self._apply(
            mutations.update_node_style(self._code, node_id, style),
            f"restyle node {node_id}",
        )
        if not changed and overrides != previous:
            self._dirty = True
            self._notify_change()
            return True
        return changed

    def update_subgraph_style(self, subgraph_id: str, style: NodeStyle) -> bool:
        return self._apply(
            mutations.update_subgraph_style(self._code, subgraph_id, style),
            f"restyle subgraph {subgraph_id}",
        )

    def get_node_style(self, node_id: str) -> NodeStyle:
        """Effective style: defaults, then stored overrides, then the text directive."""
        style = merge_styles(DEFAULT_NODE_STYLE, self._node_styles.get(node_id, NodeStyle()))
        return merge_styles(style, scan_styles(self._code).get(node_id, NodeStyle()))

    # --- Rendering ---

    def set_render_result(self, error: Optional[str]):
        """Store the renderer's failure message verbatim; None clears it."""
        if error:
            logger.warning("Render failed: %s", error)
        self._render_error = error or None

    # --- File Operations ---

    def reset(self, code: str = DEFAULT_CODE):
        """Start a fresh document."""
        self._code = code
        self._history.reset(code)
        self._selection.clear()
        self._node_styles = {}
        self._render_error = None
        self._file_path = None
        self._dirty = False
        self._notify_change()

    def load(self, file_path: str | Path) -> str:
        """Load {code, node_styles} from a JSON file. History starts over."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Editor state file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                state = PersistedState.model_validate(json.load(f))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ValueError(f"Invalid editor state file {path}: {e}") from e

        self._code = state.code
        self._node_styles = dict(state.node_styles)
        self._history.reset(state.code)
        self._selection.clear()
        self._render_error = None
        self._file_path = path
        self._dirty = False
        logger.info("Loaded editor state from %s", path)
        self._notify_change()
        return self._code

    def save(self, file_path: Optional[str | Path] = None) -> Path:
        """
        Save {code, node_styles} to a JSON file.

        If file_path is provided, save to that path (Save As).
        Otherwise, save to the current file_path.
        """
        if file_path:
            path = Path(file_path)
        elif self._file_path:
            path = self._file_path
        else:
            raise ValueError("No file path specified and no current file path")

        state = PersistedState(code=self._code, node_styles=self._node_styles)

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(state.model_dump(mode="json", exclude_none=True), f, indent=2, ensure_ascii=False)

        self._file_path = path
        self._dirty = False
        logger.info("Saved editor state to %s", path)
        return path

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        return {
            "code": self._code,
            "direction": self.direction.value,
            "selection": self._selection.to_dict(),
            "node_styles": {
                node_id: style.model_dump(exclude_none=True)
                for node_id, style in self._node_styles.items()
            },
            "render_error": self._render_error,
            "file_path": str(self._file_path) if self._file_path else None,
            "is_dirty": self._dirty,
            "can_undo": self.can_undo,
            "can_redo": self.can_redo,
        }
