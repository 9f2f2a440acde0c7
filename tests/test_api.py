"""
HTTP/WebSocket adapter tests via FastAPI's TestClient
"""
import json
import time

from fastapi.testclient import TestClient

from flowedit_core.models import DEFAULT_CODE
from flowedit_backend.main import create_app
from flowedit_backend.session import EditorSession


def _edges(client):
    return client.get("/api/edges").json()["edges"]


class TestBuffer:

    def test_health(self, client):
        assert client.get("/api/health").json()["status"] == "ok"

    def test_get_and_set_code(self, client):
        assert client.get("/api/code").json() == {"code": DEFAULT_CODE}

        response = client.put("/api/code", json={"code": "flowchart TB\n    A", "record_history": False})

        assert response.json() == {"success": True, "changed": True}
        assert client.get("/api/state").json()["can_undo"] is False

    def test_undo_redo(self, client):
        assert client.post("/api/undo").json()["success"] is False

        client.put("/api/direction", json={"direction": "TB"})

        assert client.post("/api/undo").json() == {"success": True, "code": DEFAULT_CODE}
        assert client.post("/api/redo").json()["code"].startswith("flowchart TB")

    def test_invalid_direction(self, client):
        assert client.put("/api/direction", json={"direction": "XX"}).status_code == 422

    def test_summary(self, client):
        assert client.get("/api/diagram/summary").json()["summary"]["total_edges"] == 4


class TestNodes:

    def test_insert(self, client):
        response = client.post("/api/nodes", json={"anchor_id": "D", "label": "Next"})

        assert response.json() == {"success": True, "changed": True, "node_id": "E"}
        assert client.get("/api/code").json()["code"].endswith("    D --> E[Next]")

    def test_insert_after_unknown_anchor(self, client):
        response = client.post("/api/nodes", json={"anchor_id": "Z"})

        assert response.json() == {"success": True, "changed": False, "node_id": None}

    def test_next_id(self, client):
        assert client.get("/api/nodes/next-id").json() == {"node_id": "E"}

    def test_get_node(self, client):
        assert client.get("/api/nodes/B").json()["node"]["shape"] == "diamond"
        assert client.get("/api/nodes/Z").status_code == 404

    def test_update_label_and_shape_in_one_step(self, client):
        response = client.patch("/api/nodes/B", json={"label": "Choice", "shape": "hexagon"})

        assert response.json()["changed"] is True
        assert "B{{Choice}}" in client.get("/api/code").json()["code"]

        client.post("/api/undo")

        assert client.get("/api/code").json()["code"] == DEFAULT_CODE

    def test_delete_and_duplicate(self, client):
        assert client.post("/api/nodes/C/duplicate").json()["node_id"] == "E"
        assert client.delete("/api/nodes/E").json()["changed"] is True
        assert client.delete("/api/nodes/E").json()["changed"] is False

    def test_location(self, client):
        assert client.get("/api/nodes/C/location").json()["location"] == {"line": 2, "column": 15}
        assert client.get("/api/nodes/Z/location").status_code == 404

    def test_style(self, client):
        client.patch("/api/nodes/A/style", json={"fill": "#f00"})

        style = client.get("/api/nodes/A/style").json()["style"]

        assert style["fill"] == "#f00"
        assert style["stroke"] == "#9370DB"
        assert client.get("/api/styles").json()["styles"] == {"A": {"fill": "#f00"}}


class TestEdges:

    def test_create_with_legacy_field_names(self, client):
        response = client.post("/api/edges", json={"from": "A", "to": "D", "arrow_type": "-.->"})

        assert response.json()["changed"] is True
        assert client.get("/api/code").json()["code"].endswith("    A -.-> D")

    def test_update_label_and_arrow(self, client):
        edge = _edges(client)[1]

        response = client.patch("/api/edges", json={"edge": edge, "label": "Maybe", "arrow_type": "==>"})

        assert response.json()["changed"] is True
        assert client.get("/api/code").json()["code"].split("\n")[2] == "    B ==>|Maybe| C[Process]"

    def test_stale_edge(self, client):
        stale = {"source": "A", "target": "B", "line_index": 99}

        assert client.post("/api/edges/delete", json={"edge": stale}).json()["changed"] is False
        assert client.post("/api/edges/location", json={"edge": stale}).json()["location"]["line"] == 1

    def test_delete(self, client):
        edge = _edges(client)[0]

        assert client.post("/api/edges/delete", json={"edge": edge}).json()["changed"] is True
        assert len(_edges(client)) == 3


class TestSubgraphs:

    def test_lifecycle(self, client):
        assert client.post("/api/subgraphs", json={"id": "G", "title": "Group", "node_ids": ["A"]}).json()["changed"]
        assert client.patch("/api/subgraphs/G", json={"title": "Renamed"}).json()["changed"]
        assert client.post("/api/subgraphs/G/nodes/D").json()["changed"]

        (group,) = client.get("/api/subgraphs").json()["subgraphs"]

        assert group["title"] == "Renamed"
        assert group["nodes"] == ["A", "D"]

        assert client.delete("/api/subgraphs/G/nodes/D").json()["changed"]
        assert client.patch("/api/subgraphs/G/style", json={"fill": "#eee"}).json()["changed"]
        assert client.delete("/api/subgraphs/G").json()["changed"]
        assert client.get("/api/subgraphs").json()["subgraphs"] == []


class TestSelectionAndRendering:

    def test_selection(self, client):
        response = client.put("/api/selection", json={"node_id": "A"})

        assert response.json()["selection"]["kind"] == "node"

        client.put("/api/selection", json={})

        assert client.get("/api/selection").json()["kind"] == "none"

    def test_resolve_element(self, client):
        response = client.post("/api/resolve-element", json={"element_id": "flowchart-A-0"})

        assert response.json() == {"success": True, "node_id": "A", "exists": True}

    def test_render_result(self, client):
        client.post("/api/render-result", json={"error": "Parse error"})

        assert client.get("/api/state").json()["render_error"] == "Parse error"

    def test_scheduled_render_reports_errors(self, session, settings):
        class FailingRenderer:
            async def render(self, code):
                raise ValueError("Lexical error on line 1")

        app = create_app(session=session, renderer=FailingRenderer(), settings=settings)
        with TestClient(app) as client:
            client.put("/api/code", json={"code": "flowchart LR\n    A -->"})
            deadline = time.monotonic() + 2
            while session.render_error is None and time.monotonic() < deadline:
                time.sleep(0.01)

        assert session.render_error == "Lexical error on line 1"


class TestFiles:

    def test_save_and_open(self, client, tmp_path):
        path = tmp_path / "doc.json"
        client.put("/api/direction", json={"direction": "RL"})

        assert client.post("/api/file/save", json={"file_path": str(path)}).json()["success"]

        client.post("/api/file/new")

        assert client.get("/api/code").json()["code"] == DEFAULT_CODE

        response = client.post("/api/file/open", json={"file_path": str(path)})

        assert response.json()["code"].startswith("flowchart RL")

    def test_save_defaults_to_state_file(self, client, settings):
        response = client.post("/api/file/save", json={})

        assert response.json()["file_path"] == str(settings.state_file)
        assert json.loads(settings.state_file.read_text())["code"] == DEFAULT_CODE

    def test_open_errors(self, client, tmp_path):
        broken = tmp_path / "broken.json"
        broken.write_text("{")

        assert client.post("/api/file/open", json={"file_path": str(tmp_path / "none.json")}).status_code == 404
        assert client.post("/api/file/open", json={"file_path": str(broken)}).status_code == 400

    def test_state_file_is_loaded_on_startup(self, settings):
        saved = EditorSession("flowchart BT\n    A")
        saved.save(settings.state_file)

        app = create_app(settings=settings)

        assert app.state.session.code == "flowchart BT\n    A"


class TestWebSocket:

    def test_ping_and_code_updates(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"

            client.put("/api/direction", json={"direction": "BT"})
            message = websocket.receive_json()

        assert message["type"] == "code_updated"
        assert message["code"].startswith("flowchart BT")

    def test_reported_render_result_is_broadcast(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"

            client.post("/api/render-result", json={"error": "Parse error"})
            message = websocket.receive_json()

        assert message == {"type": "render_result", "render_error": "Parse error"}
