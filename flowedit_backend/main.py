"""
Flowedit Backend - FastAPI Application

This module exposes one EditorSession to the outside world:
- REST API for every text mutation, scans, selection, undo/redo and files
- WebSocket endpoint pushing `code_updated` events
- Debounced rendering through an optional Renderer collaborator
- CORS configuration for local frontend development

Stale or unknown targets are not errors: the response carries
`"changed": false` and the buffer is left untouched.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from flowedit_core import mutations
from flowedit_core.models import (
    ArrowType,
    CreateEdgeRequest,
    CreateSubgraphRequest,
    DirectionRequest,
    EdgeInfo,
    EdgeRequest,
    InsertNodeRequest,
    NodeShape,
    NodeStyle,
    RenderResultRequest,
    ResolveElementRequest,
    SelectionRequest,
    SetCodeRequest,
    UpdateEdgeRequest,
    UpdateNodeRequest,
    UpdateSubgraphRequest,
)

from .config import Settings
from .history import RecordHistory
from .render import Renderer, RenderScheduler
from .session import EditorSession
from .websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"


class OpenFileRequest(BaseModel):
    file_path: str


class SaveFileRequest(BaseModel):
    file_path: Optional[str] = None


def _changed(changed: bool, **extra) -> dict:
    return {"success": True, "changed": changed, **extra}


def create_app(
    session: Optional[EditorSession] = None,
    renderer: Optional[Renderer] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the API around `session` (a fresh one by default)."""
    settings = settings or Settings.from_env()
    if session is None:
        session = EditorSession(max_history=settings.max_history)
        if settings.state_file and settings.state_file.exists():
            session.load(settings.state_file)

    ws_manager = WebSocketManager()

    # --- Async change notification ---
    # Bridge between sync session callbacks and async WebSocket broadcasts.
    # Events are created per lifespan so each event loop gets its own.

    events: dict[str, asyncio.Event] = {}

    def on_session_change():
        if "change" in events:
            events["change"].set()

    def on_render_result(error: Optional[str]):
        session.set_render_result(error)
        if "render" in events:
            events["render"].set()

    session.on_change(on_session_change)

    scheduler = None
    if renderer is not None:
        scheduler = RenderScheduler(renderer, on_render_result, delay=settings.render_delay)

    async def change_broadcaster(event: asyncio.Event):
        """Broadcast buffer changes and kick off a re-render for each."""
        while True:
            await event.wait()
            event.clear()
            if scheduler is not None:
                scheduler.schedule(session.code)
            await ws_manager.notify_code_updated(session.code, session.render_error)

    async def render_broadcaster(event: asyncio.Event):
        while True:
            await event.wait()
            event.clear()
            await ws_manager.notify_render_result(session.render_error)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        events["change"] = asyncio.Event()
        events["render"] = asyncio.Event()
        tasks = [
            asyncio.create_task(change_broadcaster(events["change"])),
            asyncio.create_task(render_broadcaster(events["render"])),
        ]
        if scheduler is not None:
            scheduler.schedule(session.code)

        yield

        if scheduler is not None:
            scheduler.cancel()
        for task in tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        events.clear()

    app = FastAPI(
        title="Flowedit API",
        description="Text-synchronised editing of flowchart DSL documents",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.session = session
    app.state.ws_manager = ws_manager
    app.state.scheduler = scheduler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Health Check ---

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", "connections": ws_manager.connection_count}

    # --- Buffer ---

    @app.get("/api/state")
    async def get_state():
        """Get the full session state."""
        return session.get_state()

    @app.get("/api/code")
    async def get_code():
        return {"code": session.code}

    @app.put("/api/code")
    async def set_code(request: SetCodeRequest):
        """Replace the buffer, optionally without recording an undo step."""
        record = RecordHistory.YES if request.record_history else RecordHistory.NO
        return _changed(session.set_code(request.code, record))

    @app.get("/api/diagram/summary")
    async def get_summary():
        return {"success": True, "summary": session.summary().to_dict()}

    # --- Undo/Redo ---

    @app.post("/api/undo")
    async def undo():
        """Undo the last recorded change."""
        code = session.undo()
        if code is not None:
            return {"success": True, "code": code}
        return {"success": False, "message": "Nothing to undo"}

    @app.post("/api/redo")
    async def redo():
        """Redo the last undone change."""
        code = session.redo()
        if code is not None:
            return {"success": True, "code": code}
        return {"success": False, "message": "Nothing to redo"}

    # --- Direction ---

    @app.get("/api/direction")
    async def get_direction():
        return {"direction": session.direction.value}

    @app.put("/api/direction")
    async def set_direction(request: DirectionRequest):
        return _changed(session.set_direction(request.direction))

    # --- Node Operations ---

    @app.get("/api/nodes")
    async def list_nodes():
        return {"success": True, "nodes": [n.model_dump() for n in session.nodes()]}

    @app.post("/api/nodes")
    async def insert_node(request: InsertNodeRequest):
        """Insert a node after an anchor and link it from the anchor."""
        node_id = session.insert_node_after(
            request.anchor_id,
            request.label,
            request.shape,
            node_id=request.node_id,
        )
        return _changed(node_id is not None, node_id=node_id)

    # Fixed paths MUST be before the parameterized routes
    @app.get("/api/nodes/next-id")
    async def next_node_id():
        return {"node_id": session.next_node_id()}

    @app.get("/api/nodes/{node_id}")
    async def get_node(node_id: str):
        for node in session.nodes():
            if node.id == node_id:
                return {"success": True, "node": node.model_dump()}
        raise HTTPException(status_code=404, detail="Node not found")

    @app.patch("/api/nodes/{node_id}")
    async def update_node(node_id: str, request: UpdateNodeRequest):
        """Relabel and/or reshape a node as a single undo step."""
        code = session.code
        if request.label is not None:
            code = mutations.update_node_label(code, node_id, request.label)
        if request.shape is not None:
            code = mutations.update_node_shape(code, node_id, request.shape)
        return _changed(session.set_code(code))

    @app.delete("/api/nodes/{node_id}")
    async def delete_node(node_id: str):
        return _changed(session.delete_node(node_id))

    @app.post("/api/nodes/{node_id}/duplicate")
    async def duplicate_node(node_id: str):
        new_id = session.duplicate_node(node_id)
        return _changed(new_id is not None, node_id=new_id)

    @app.get("/api/nodes/{node_id}/location")
    async def locate_node(node_id: str):
        location = session.locate_node(node_id)
        if location is None:
            raise HTTPException(status_code=404, detail="Node not found")
        return {"success": True, "location": location.model_dump()}

    @app.get("/api/nodes/{node_id}/style")
    async def get_node_style(node_id: str):
        style = session.get_node_style(node_id)
        return {"success": True, "style": style.model_dump(exclude_none=True)}

    @app.patch("/api/nodes/{node_id}/style")
    async def update_node_style(node_id: str, style: NodeStyle):
        return _changed(session.update_node_style(node_id, style))

    # --- Edge Operations ---

    @app.get("/api/edges")
    async def list_edges():
        return {"success": True, "edges": [e.model_dump() for e in session.edges()]}

    @app.post("/api/edges")
    async def create_edge(request: CreateEdgeRequest):
        changed = session.add_connection(
            request.source,
            request.target,
            label=request.label,
            arrow=request.arrow_type,
        )
        return _changed(changed)

    @app.patch("/api/edges")
    async def update_edge(request: UpdateEdgeRequest):
        """Update the label and/or arrow of a previously scanned edge."""
        edge = request.edge
        changed = False
        if request.label is not None:
            changed = session.update_edge_label(edge, request.label)
            if changed:
                edge = _edge_at(edge.line_index) or edge
        if request.arrow_type is not None:
            changed = session.update_edge_arrow_type(edge, request.arrow_type) or changed
        return _changed(changed)

    @app.post("/api/edges/delete")
    async def delete_edge(request: EdgeRequest):
        return _changed(session.delete_edge(request.edge))

    @app.post("/api/edges/location")
    async def locate_edge(request: EdgeRequest):
        location = session.locate_edge(request.edge)
        if location is None:
            raise HTTPException(status_code=404, detail="Edge not found")
        return {"success": True, "location": location.model_dump()}

    def _edge_at(line_index: int) -> Optional[EdgeInfo]:
        for edge in session.edges():
            if edge.line_index == line_index:
                return edge
        return None

    # --- Subgraph Operations ---

    @app.get("/api/subgraphs")
    async def list_subgraphs():
        return {"success": True, "subgraphs": [s.model_dump() for s in session.subgraphs()]}

    @app.post("/api/subgraphs")
    async def create_subgraph(request: CreateSubgraphRequest):
        return _changed(session.insert_subgraph(request.id, request.title, request.node_ids))

    @app.patch("/api/subgraphs/{subgraph_id}")
    async def update_subgraph(subgraph_id: str, request: UpdateSubgraphRequest):
        return _changed(session.update_subgraph_title(subgraph_id, request.title))

    @app.delete("/api/subgraphs/{subgraph_id}")
    async def delete_subgraph(subgraph_id: str):
        return _changed(session.delete_subgraph(subgraph_id))

    @app.post("/api/subgraphs/{subgraph_id}/nodes/{node_id}")
    async def add_node_to_subgraph(subgraph_id: str, node_id: str):
        return _changed(session.add_node_to_subgraph(subgraph_id, node_id))

    @app.delete("/api/subgraphs/{subgraph_id}/nodes/{node_id}")
    async def remove_node_from_subgraph(subgraph_id: str, node_id: str):
        return _changed(session.remove_node_from_subgraph(subgraph_id, node_id))

    @app.patch("/api/subgraphs/{subgraph_id}/style")
    async def update_subgraph_style(subgraph_id: str, style: NodeStyle):
        return _changed(session.update_subgraph_style(subgraph_id, style))

    # --- Styles ---

    @app.get("/api/styles")
    async def list_styles():
        """Style directives as written in the buffer."""
        return {
            "success": True,
            "styles": {
                target_id: style.model_dump(exclude_none=True)
                for target_id, style in session.styles().items()
            },
        }

    # --- Selection ---

    @app.get("/api/selection")
    async def get_selection():
        return session.selection.to_dict()

    @app.put("/api/selection")
    async def set_selection(request: SelectionRequest):
        """Select one node, edge or group. An empty body clears the selection."""
        if request.node_id is not None:
            session.select_node(request.node_id)
        elif request.edge is not None:
            session.select_edge(request.edge)
        elif request.group_id is not None:
            session.select_group(request.group_id)
        else:
            session.clear_selection()
        return {"success": True, "selection": session.selection.to_dict()}

    # --- Rendering ---

    @app.post("/api/render-result")
    async def report_render_result(request: RenderResultRequest):
        """Record the outcome of a render done by an external client."""
        on_render_result(request.error)
        return {"success": True, "render_error": session.render_error}

    @app.post("/api/resolve-element")
    async def resolve_element(request: ResolveElementRequest):
        """Map a rendered element id back to a node id."""
        node_id = session.resolve_element(request.element_id)
        return {
            "success": True,
            "node_id": node_id,
            "exists": node_id is not None and node_id in session.node_ids(),
        }

    # --- File Operations ---

    @app.post("/api/file/new")
    async def new_file():
        session.reset()
        return {"success": True, "code": session.code}

    @app.post("/api/file/open")
    async def open_file(request: OpenFileRequest):
        """Open a saved {code, node_styles} JSON document."""
        try:
            code = session.load(request.file_path)
            return {"success": True, "code": code, "file_path": str(session.file_path)}
        except FileNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Failed to open file: {e}")

    @app.post("/api/file/save")
    async def save_file(request: SaveFileRequest):
        file_path = request.file_path
        if file_path is None and session.file_path is None:
            file_path = settings.state_file
        try:
            path = session.save(file_path)
            return {"success": True, "file_path": str(path)}
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except OSError as e:
            raise HTTPException(status_code=500, detail=f"Failed to save: {e}")

    # --- Enums for Frontend ---

    @app.get("/api/enums/shapes")
    async def get_shapes():
        return {"shapes": [s.value for s in NodeShape]}

    @app.get("/api/enums/arrows")
    async def get_arrows():
        return {"arrows": [a.value for a in ArrowType]}

    # --- WebSocket ---

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        WebSocket endpoint for real-time updates.

        Clients receive:
        - {"type": "code_updated", "code": ..., "render_error": ...}
        - {"type": "render_result", "render_error": ...}

        Clients can send "ping" and get "pong" back.
        """
        await ws_manager.connect(websocket)
        try:
            while True:
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text("pong")
        except WebSocketDisconnect:
            pass
        finally:
            await ws_manager.disconnect(websocket)

    return app


def run():
    """Run the backend server."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    settings = Settings.from_env()
    logger.info("Starting Flowedit backend on %s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
