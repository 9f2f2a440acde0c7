import pytest

from flowedit_core import mutations
from flowedit_core.models import ArrowType, EdgeInfo, FlowDirection, NodeShape, NodeStyle
from flowedit_core.scanner import scan_edges, scan_nodes, scan_styles, scan_subgraphs

GROUPED = "flowchart LR\n    subgraph G[Old]\n        A\n    end"


def _edge(text, source, target):
    return next(e for e in scan_edges(text) if e.source == source and e.target == target)


class TestDirection:

    def test_toggle_round_trip(self, default_code):
        top_down = mutations.set_direction(default_code, FlowDirection.TB)

        assert top_down == default_code.replace("flowchart LR", "flowchart TB", 1)
        assert mutations.set_direction(top_down, "LR") == default_code

    def test_graph_keyword_and_td(self):
        assert mutations.set_direction("graph TD\n    A", "RL") == "graph RL\n    A"

    def test_no_header_is_a_no_op(self):
        text = "    A --> B"

        assert mutations.set_direction(text, FlowDirection.BT) == text


class TestInsertNodeAfter:

    def test_after_last_mention(self, default_code):
        result = mutations.insert_node_after(default_code, "D", "E", "New")

        assert result == default_code + "\n    D --> E[New]"

    def test_shape_and_position(self, default_code):
        result = mutations.insert_node_after(default_code, "A", "E", "Next", NodeShape.ROUNDED)

        assert result.split("\n")[2] == "    A --> E(Next)"
        assert len(result.split("\n")) == len(default_code.split("\n")) + 1

    def test_anchor_must_match_whole_token(self):
        text = "flowchart LR\n    AB[x] --> C"

        assert mutations.insert_node_after(text, "A", "E", "New") == text

    def test_joins_anchor_subgraph(self):
        text = "flowchart LR\n    subgraph G\n        A[One]\n    end\n    A --> B"

        result = mutations.insert_node_after(text, "A", "C", "New")

        assert result == (
            "flowchart LR\n"
            "    subgraph G\n"
            "        A[One]\n"
            "        A --> C[New]\n"
            "    end\n"
            "    A --> B"
        )
        assert scan_subgraphs(result)[0].nodes == ["A", "C"]

    def test_copies_anchor_style(self):
        text = "flowchart LR\n    A[One]\n    style A fill:#f00"

        result = mutations.insert_node_after(text, "A", "B", "Two")

        assert result == (
            "flowchart LR\n"
            "    A[One]\n"
            "    style A fill:#f00\n"
            "    style B fill:#f00\n"
            "    A --> B[Two]"
        )

    def test_untouched_lines_are_byte_identical(self):
        text = "flowchart LR\n\tA[Start]  -->   B\n  %% keep me\n      C"
        original = text.split("\n")

        result = mutations.insert_node_after(text, "C", "D", "New").split("\n")

        assert result[:4] == original
        assert result[4] == "      C --> D[New]"


class TestNodeLabelAndShape:

    def test_label_round_trip(self, default_code):
        result = mutations.update_node_label(default_code, "B", "Choice")

        assert result.split("\n")[1] == "    A[Start] --> B{Choice}"
        assert {n.id: n.label for n in scan_nodes(result)}["B"] == "Choice"
        assert mutations.update_node_label(result, "B", "Decision") == default_code

    def test_referenced_only_node_cannot_be_relabelled(self):
        text = "flowchart LR\n    X --> Y"

        assert mutations.update_node_label(text, "Y", "Why") == text

    def test_shape_keeps_label(self, default_code):
        result = mutations.update_node_shape(default_code, "C", NodeShape.CIRCLE)

        assert result.split("\n")[2] == "    B -->|Yes| C((Process))"

    def test_missing_node(self, default_code):
        assert mutations.update_node_shape(default_code, "Z", "hexagon") == default_code


class TestDeleteNode:

    def test_restores_orphaned_declarations(self, default_code):
        result = mutations.delete_node(default_code, "B")

        assert result == (
            "flowchart LR\n"
            "    A[Start]\n"
            "    C[Process]\n"
            "    D[End]\n"
            "    C --> D"
        )
        nodes = {n.id: n for n in scan_nodes(result)}
        assert "B" not in nodes
        assert nodes["A"].label == "Start"
        assert [(e.source, e.target) for e in scan_edges(result)] == [("C", "D")]

    def test_drops_lines_that_lose_an_endpoint(self, default_code):
        result = mutations.delete_node(default_code, "D")

        assert result == "flowchart LR\n    A[Start] --> B{Decision}\n    B -->|Yes| C[Process]"

    def test_fan_out_group_keeps_other_members(self):
        result = mutations.delete_node("flowchart LR\n    A & B --> C", "B")

        assert result == "flowchart LR\n    A --> C"

    def test_removes_style_and_keeps_declaration_only_line(self):
        text = "flowchart LR\n    B[Lonely]\n    A[One] --> B\n    style B fill:#f00"

        result = mutations.delete_node(text, "B")

        assert result == "flowchart LR\n    A[One]\n    B[Lonely]"

    def test_missing_node(self, default_code):
        assert mutations.delete_node(default_code, "Z") == default_code


class TestDuplicateNode:

    def test_copies_incoming_and_outgoing_edges(self, default_code):
        result, new_id = mutations.duplicate_node(default_code, "C")

        assert new_id == "E"
        assert result == default_code + "\n    B -->|Yes| E[Process]\n    E --> D"
        edges = {(e.source, e.target, e.label) for e in scan_edges(result)}
        assert {("B", "E", "Yes"), ("E", "D", "")} <= edges

    def test_node_without_incoming_edges_gets_declaration(self, default_code):
        result, new_id = mutations.duplicate_node(default_code, "A")

        assert result.split("\n")[2:4] == ["    E[Start]", "    E --> B"]

    def test_copies_style(self):
        text = "flowchart LR\n    A[One]\n    style A fill:#0f0"

        result, new_id = mutations.duplicate_node(text, "A")

        assert scan_styles(result)[new_id] == NodeStyle(fill="#0f0")

    def test_undeclared_node(self, default_code):
        assert mutations.duplicate_node(default_code, "Z") == (default_code, None)

    def test_arrow_in_another_label_is_not_copied(self):
        text = "flowchart LR\n    A[a] --> B[b]\n    N[see A --> B]"

        result, new_id = mutations.duplicate_node(text, "B")

        assert new_id == "C"
        assert result == "flowchart LR\n    A[a] --> B[b]\n    A --> C[b]\n    N[see A --> B]"


class TestEdges:

    def test_add_connection(self, default_code):
        result = mutations.add_connection(default_code, "A", "D", "skip", ArrowType.DOTTED)

        assert result == default_code + "\n    A -.->|skip| D"

    def test_add_connection_before_trailing_blank_line(self):
        result = mutations.add_connection("flowchart LR\n    A --> B\n", "B", "C")

        assert result == "flowchart LR\n    A --> B\n    B --> C\n"

    def test_delete_edge(self, default_code):
        result = mutations.delete_edge(default_code, _edge(default_code, "B", "C"))

        assert "Yes" not in result
        assert len(result.split("\n")) == 4

    def test_delete_edge_out_of_range(self, default_code):
        stale = EdgeInfo(source="A", target="B", line_index=42)

        assert mutations.delete_edge(default_code, stale) == default_code

    def test_label_text_is_never_treated_as_an_edge(self):
        text = "flowchart LR\n    C[go --> home]"
        phantom = EdgeInfo(source="go", target="home", line_index=1)

        assert mutations.delete_edge(text, phantom) == text
        assert mutations.update_edge_arrow_type(text, phantom, ArrowType.THICK) == text
        assert mutations.update_edge_label(text, phantom, "x") == text

    def test_delete_edge_on_rewritten_line(self, default_code):
        stale = EdgeInfo(source="A", target="C", line_index=2)

        assert mutations.delete_edge(default_code, stale) == default_code

    def test_relabel_edge(self, default_code):
        result = mutations.update_edge_label(default_code, _edge(default_code, "B", "C"), "Maybe")

        assert result.split("\n")[2] == "    B -->|Maybe| C[Process]"

    def test_empty_label_removes_it(self, default_code):
        result = mutations.update_edge_label(default_code, _edge(default_code, "B", "C"), "")

        assert result.split("\n")[2] == "    B --> C[Process]"

    def test_label_added_to_unlabelled_edge(self, default_code):
        result = mutations.update_edge_label(default_code, _edge(default_code, "A", "B"), "go")

        assert result.split("\n")[1] == "    A[Start] -->|go| B{Decision}"

    def test_stale_edge_is_a_no_op(self, default_code):
        stale = EdgeInfo(source="A", target="C", line_index=2)

        assert mutations.update_edge_label(default_code, stale, "x") == default_code
        assert mutations.update_edge_arrow_type(default_code, stale, "==>") == default_code

    @pytest.mark.parametrize("arrow,line", [
        (ArrowType.THICK, "    B ==>|Yes| C[Process]"),
        (ArrowType.DOTTED, "    B -.->|Yes| C[Process]"),
        (ArrowType.LONG, "    B --->|Yes| C[Process]"),
    ])
    def test_change_arrow(self, default_code, arrow, line):
        result = mutations.update_edge_arrow_type(default_code, _edge(default_code, "B", "C"), arrow)

        assert result.split("\n")[2] == line


class TestSubgraphs:

    def test_insert_subgraph_reuses_declarations(self, default_code):
        result = mutations.insert_subgraph(default_code, "G", "Group", ["A", "Z"])

        assert result == default_code + "\n    subgraph G[Group]\n        A[Start]\n        Z\n    end"
        (group,) = scan_subgraphs(result)
        assert group.nodes == ["A", "Z"]

    def test_insert_untitled_subgraph(self, default_code):
        result = mutations.insert_subgraph(default_code, "G")

        assert result.endswith("\n    subgraph G\n    end")

    def test_update_title(self):
        assert mutations.update_subgraph_title(GROUPED, "G", "New") == GROUPED.replace("[Old]", "[New]")

    def test_update_title_adds_brackets(self):
        text = "flowchart LR\n    subgraph G\n        A\n    end"

        assert mutations.update_subgraph_title(text, "G", "New").split("\n")[1] == "    subgraph G[New]"

    def test_update_missing_title(self):
        assert mutations.update_subgraph_title(GROUPED, "H", "New") == GROUPED

    def test_delete_subgraph_dedents_members(self):
        assert mutations.delete_subgraph(GROUPED, "G") == "flowchart LR\n    A"

    def test_move_declaration_in_and_out(self):
        text = "flowchart LR\n    A[One]\n    subgraph G\n        B\n    end"

        moved_in = mutations.add_node_to_subgraph(text, "G", "A")

        assert moved_in == "flowchart LR\n    subgraph G\n        B\n        A[One]\n    end"

        moved_out = mutations.remove_node_from_subgraph(moved_in, "G", "A")

        assert moved_out == "flowchart LR\n    subgraph G\n        B\n    end\n    A[One]"

    def test_add_bare_reference(self):
        result = mutations.add_node_to_subgraph(GROUPED, "G", "C")

        assert result == "flowchart LR\n    subgraph G[Old]\n        A\n        C\n    end"

    def test_add_existing_member_is_a_no_op(self):
        assert mutations.add_node_to_subgraph(GROUPED, "G", "A") == GROUPED

    def test_remove_bare_reference(self):
        assert mutations.remove_node_from_subgraph(GROUPED, "G", "A") == "flowchart LR\n    subgraph G[Old]\n    end"


class TestStyles:

    def test_upsert_appends_then_merges(self, default_code):
        styled = mutations.update_node_style(default_code, "A", NodeStyle(fill="#f9f"))

        assert styled == default_code + "\n    style A fill:#f9f"

        restyled = mutations.update_node_style(styled, "A", NodeStyle(stroke="#333"))

        assert restyled == default_code + "\n    style A fill:#f9f,stroke:#333"

    def test_upsert_collapses_duplicates(self):
        text = "flowchart LR\n    A --> B\n    style A fill:#111\n    style A fill:#222"

        result = mutations.update_node_style(text, "A", NodeStyle(color="#fff"))

        assert result == "flowchart LR\n    A --> B\n    style A fill:#111,color:#fff"

    def test_empty_style_is_a_no_op(self, default_code):
        assert mutations.update_node_style(default_code, "A", NodeStyle()) == default_code

    def test_subgraph_style(self):
        result = mutations.update_subgraph_style(GROUPED, "G", NodeStyle(fill="#eee", stroke_width=3))

        assert result.endswith("\n    style G fill:#eee,stroke-width:3px")
