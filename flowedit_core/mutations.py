"""
Mutation engine - Structural edits expressed as text -> text rewrites.

Every operation takes the current buffer and returns a new one; the input
is never modified. Edits replace, insert or remove whole lines, except
where only a bracketed span (label, shape, title) or a style property
list is rewritten. Lines an operation does not target come back
byte-identical.

An operation that cannot find its target returns the input unchanged.
Callers compare the result with the input to learn whether anything
happened; nothing here raises for a stale or missing target.
"""

import re
from collections import defaultdict
from typing import Iterable, Optional

from .allocator import next_id
from .models import (
    ArrowType,
    EdgeInfo,
    FlowDirection,
    NodeShape,
    NodeStyle,
    INDENT,
    SHAPE_BRACKETS,
)
from .scanner import (
    ARROW_PATTERN,
    EDGE_RE,
    HEADER_RE,
    SUBGRAPH_RE,
    find_declaration,
    find_subgraph,
    has_arrow,
    is_directive_line,
    is_header_line,
    iter_declarations,
    mask_node_labels,
    scan_edges,
    scan_node_ids,
    scan_styles,
    scan_subgraphs,
    split_lines,
    token_pattern,
)
from .styles import format_style_value, merge_styles, style_line_pattern

# Arrow plus optional |label|, with the whitespace around it
_CONNECTOR_RE = re.compile(rf"\s*(?:{ARROW_PATTERN})(?:\s*\|[^|]*\|)?\s*")


def _join(lines: list[str]) -> str:
    return "\n".join(lines)


def _indent_of(line: str) -> str:
    return line[:len(line) - len(line.lstrip())]


def _dedent(line: str) -> str:
    """Remove one indentation unit (a tab, or up to four spaces)."""
    if line.startswith("\t"):
        return line[1:]
    return re.sub(r"^ {1,4}", "", line)


def _append_index(lines: list[str]) -> int:
    """Insertion point just after the last non-blank line."""
    for index in range(len(lines) - 1, -1, -1):
        if lines[index].strip():
            return index + 1
    return len(lines)


def _label_part(label: Optional[str]) -> str:
    return f"|{label}|" if label else ""


def _reference_lines(lines: list[str], node_id: str) -> list[int]:
    """Indices of lines mentioning `node_id` as a whole token, header excluded."""
    pattern = token_pattern(node_id)
    return [
        index for index, line in enumerate(lines)
        if not is_header_line(line) and pattern.search(mask_node_labels(line))
    ]


def _token_is(token: str, node_id: str) -> bool:
    """`B` and `B[label]` are the node B; `Bx` is not."""
    return bool(re.match(rf"{re.escape(node_id)}(?![A-Za-z0-9_])", token))


def _standalone_declarations(lines: list[str], node_id: str) -> list[int]:
    """Lines consisting of nothing but a bracketed declaration of `node_id`."""
    found: list[int] = []
    for index, line in enumerate(lines):
        decls = iter_declarations(line)
        if len(decls) != 1 or decls[0].node_id != node_id:
            continue
        if line.strip() == decls[0].text(line):
            found.append(index)
    return found


# --- Direction ---

def set_direction(text: str, direction: FlowDirection | str) -> str:
    """Rewrite the direction token of the first flowchart/graph header."""
    value = FlowDirection(direction).value
    return HEADER_RE.sub(lambda m: f"{m.group('prefix')}{value}", text, count=1)


# --- Nodes ---

def _enclosing_group(text: str, node_id: str, matches: list[int]):
    """The innermost subgraph listing `node_id`, preferring the one holding its last mention."""
    groups = [g for g in scan_subgraphs(text) if node_id in g.nodes]
    if not groups:
        return None
    innermost_first = sorted(groups, key=lambda g: g.line_start, reverse=True)
    for group in innermost_first:
        if group.contains_line(matches[-1]):
            return group
    return max(
        innermost_first,
        key=lambda g: max((i for i in matches if g.contains_line(i)), default=-1),
    )


def insert_node_after(
    text: str,
    anchor_id: str,
    new_id: str,
    new_label: str,
    shape: NodeShape | str = NodeShape.RECTANGLE,
) -> str:
    """
    Add `anchor --> new[label]` after the last line mentioning the anchor.

    When the anchor belongs to a subgraph, the line goes after the anchor's
    last mention inside that subgraph (or just before its `end`), so the
    new node joins the same group. A style directive on the anchor is
    copied to the new node.
    """
    lines = split_lines(text)
    matches = _reference_lines(lines, anchor_id)
    if not matches:
        return text

    insert_at = matches[-1] + 1
    indent = _indent_of(lines[matches[-1]]) or INDENT

    group = _enclosing_group(text, anchor_id, matches)
    if group is not None:
        inside = [i for i in matches if group.contains_line(i)]
        if inside:
            insert_at = inside[-1] + 1
            indent = _indent_of(lines[inside[-1]]) or INDENT
        else:
            insert_at = group.line_end
            indent = _indent_of(lines[group.line_start]) + INDENT

    opener, closer = SHAPE_BRACKETS[NodeShape(shape)]
    inserts: list[tuple[int, str]] = [
        (insert_at, f"{indent}{anchor_id} --> {new_id}{opener}{new_label}{closer}"),
    ]

    anchor_style = scan_styles(text).get(anchor_id)
    if anchor_style is not None:
        pattern = style_line_pattern(anchor_id)
        for index, line in enumerate(lines):
            match = pattern.match(line)
            if match:
                inserts.append((
                    index + 1,
                    f"{match.group(1)}style {new_id} {format_style_value(anchor_style)}",
                ))
                break

    # Highest index first; on a tie the copied style line lands first
    for index, line in sorted(inserts, key=lambda item: item[0], reverse=True):
        lines.insert(index, line)
    return _join(lines)


def update_node_label(text: str, node_id: str, new_label: str) -> str:
    """Replace the label inside the first bracketed declaration of `node_id`."""
    lines = split_lines(text)
    found = find_declaration(lines, node_id)
    if found is None:
        return text
    index, decl = found
    line = lines[index]
    lines[index] = line[:decl.label_start] + new_label + line[decl.label_end:]
    return _join(lines)


def update_node_shape(text: str, node_id: str, shape: NodeShape | str) -> str:
    """Swap the brackets of the first declaration of `node_id`, keeping its label."""
    lines = split_lines(text)
    found = find_declaration(lines, node_id)
    if found is None:
        return text
    index, decl = found
    opener, closer = SHAPE_BRACKETS[NodeShape(shape)]
    line = lines[index]
    bracket_start = decl.label_start - len(decl.opener)
    lines[index] = line[:bracket_start] + opener + decl.label + closer + line[decl.end:]
    return _join(lines)


def _split_link_line(line: str) -> Optional[tuple[str, list[str], list[list[str]], list[str]]]:
    """
    Break a link line into endpoint groups and the connectors between them.

    `A & B[x] --> C` gives groups [["A", "B[x]"], ["C"]]. Arrows and `&`
    inside bracket labels are ignored. Returns (indent, stripped original
    segments, token groups, connectors), or None when the line holds no
    arrow outside of labels.
    """
    masked = mask_node_labels(line)

    connectors = list(_CONNECTOR_RE.finditer(masked))
    if not connectors:
        return None

    indent = _indent_of(line)
    bounds: list[tuple[int, int]] = []
    pos = len(indent)
    for match in connectors:
        bounds.append((pos, match.start()))
        pos = match.end()
    bounds.append((pos, len(line.rstrip())))

    segments: list[str] = []
    groups: list[list[str]] = []
    for start, end in bounds:
        segments.append(line[start:end].strip())
        tokens: list[str] = []
        token_start = start
        for offset in range(start, end):
            if masked[offset] == "&":
                tokens.append(line[token_start:offset].strip())
                token_start = offset + 1
        tokens.append(line[token_start:end].strip())
        groups.append([token for token in tokens if token])

    return indent, segments, groups, [line[m.start():m.end()] for m in connectors]


def delete_node(text: str, node_id: str) -> str:
    """
    Remove a node's style directive and its appearances on link lines.

    On each link line the node's tokens are removed from their `&` group.
    The line is re-emitted when every group still has a token, and dropped
    otherwise. When a dropped line held the only bracketed declaration of
    some other node, that declaration is restored on its own line after
    the header so its label and shape survive. Standalone declaration
    lines and subgraph lines are left alone.
    """
    lines = split_lines(text)
    style_pattern = style_line_pattern(node_id)
    pattern = token_pattern(node_id)

    definitions: dict[str, list[int]] = defaultdict(list)
    for index, line in enumerate(lines):
        for decl in iter_declarations(line):
            definitions[decl.node_id].append(index)

    kept: list[str] = []
    restored: list[str] = []
    for index, line in enumerate(lines):
        if style_pattern.match(line):
            continue
        if is_directive_line(line) or not has_arrow(line) or not pattern.search(line):
            kept.append(line)
            continue

        split = _split_link_line(line)
        if split is None:
            kept.append(line)
            continue
        indent, segments, groups, connectors = split

        remaining = [[t for t in group if not _token_is(t, node_id)] for group in groups]
        if all(remaining):
            parts = [
                segment if len(left) == len(group) else " & ".join(left)
                for segment, group, left in zip(segments, groups, remaining)
            ]
            rebuilt = indent + parts[0]
            for connector, part in zip(connectors, parts[1:]):
                rebuilt += connector + part
            kept.append(rebuilt)
            continue

        for group in remaining:
            for token in group:
                for decl in iter_declarations(token):
                    if decl.node_id != node_id and definitions[decl.node_id] == [index]:
                        restored.append(INDENT + decl.text(token))

    if restored:
        header = next((i for i, line in enumerate(kept) if is_header_line(line)), -1)
        kept[header + 1:header + 1] = restored

    return _join(kept)


def duplicate_node(text: str, node_id: str) -> tuple[str, Optional[str]]:
    """
    Copy a declared node, with its edges, under a freshly allocated id.

    Every edge into the node is repeated into the copy and every edge out
    of it is repeated out of the copy. With no incoming edge the copy gets
    a standalone declaration. The style directive is copied too. All new
    lines go after the last line mentioning the original.

    Returns (new text, new id), or (text, None) if `node_id` has no
    bracketed declaration.
    """
    lines = split_lines(text)
    found = find_declaration(lines, node_id)
    if found is None:
        return text, None
    _, decl = found

    new_id = next_id(scan_node_ids(text))
    declaration = f"{new_id}{decl.opener}{decl.label}{decl.closer}"
    edges = scan_edges(text)

    new_lines: list[str] = []
    declared = False
    for edge in edges:
        if edge.target != node_id:
            continue
        target = new_id if declared else declaration
        declared = True
        new_lines.append(f"{INDENT}{edge.source} {edge.arrow_type.value}{_label_part(edge.label)} {target}")
    if not declared:
        new_lines.append(f"{INDENT}{declaration}")

    for edge in edges:
        if edge.source != node_id:
            continue
        new_lines.append(f"{INDENT}{new_id} {edge.arrow_type.value}{_label_part(edge.label)} {edge.target}")

    style = scan_styles(text).get(node_id)
    if style is not None:
        new_lines.append(f"{INDENT}style {new_id} {format_style_value(style)}")

    references = _reference_lines(lines, node_id)
    insert_at = references[-1] + 1 if references else _append_index(lines)
    lines[insert_at:insert_at] = new_lines
    return _join(lines), new_id


# --- Edges ---

def add_connection(
    text: str,
    source: str,
    target: str,
    label: Optional[str] = None,
    arrow: ArrowType | str = ArrowType.ARROW,
) -> str:
    """Append `source <arrow>|label| target` after the last non-blank line."""
    lines = split_lines(text)
    new_line = f"{INDENT}{source} {ArrowType(arrow).value}{_label_part(label)} {target}"
    lines.insert(_append_index(lines), new_line)
    return _join(lines)


def delete_edge(text: str, edge: EdgeInfo) -> str:
    """Remove the line the edge was scanned from. A stale edge is a no-op."""
    lines = split_lines(text)
    if _match_edge(lines, edge) is None:
        return text
    del lines[edge.line_index]
    return _join(lines)


def _match_edge(lines: list[str], edge: EdgeInfo) -> Optional[re.Match]:
    if not 0 <= edge.line_index < len(lines):
        return None
    match = EDGE_RE.search(mask_node_labels(lines[edge.line_index]))
    if match is None:
        return None
    if match.group("source") != edge.source or match.group("target") != edge.target:
        return None
    return match


def update_edge_label(text: str, edge: EdgeInfo, new_label: str) -> str:
    """Set or clear the `|label|` of the edge; an empty label removes it."""
    lines = split_lines(text)
    match = _match_edge(lines, edge)
    if match is None:
        return text
    if match.group("label_part") is not None:
        start, end = match.span("label_part")
    else:
        start = end = match.end("arrow")
    line = lines[edge.line_index]
    lines[edge.line_index] = line[:start] + _label_part(new_label) + line[end:]
    return _join(lines)


def update_edge_arrow_type(text: str, edge: EdgeInfo, arrow: ArrowType | str) -> str:
    """Replace only the arrow glyph of the edge."""
    lines = split_lines(text)
    match = _match_edge(lines, edge)
    if match is None:
        return text
    start, end = match.span("arrow")
    line = lines[edge.line_index]
    lines[edge.line_index] = line[:start] + ArrowType(arrow).value + line[end:]
    return _join(lines)


# --- Subgraphs ---

def insert_subgraph(
    text: str,
    subgraph_id: str,
    title: str = "",
    node_ids: Optional[Iterable[str]] = None,
) -> str:
    """
    Append a subgraph block after the last non-blank line.

    Each listed node is written with its existing declaration when it has
    one, else as a bare id. Original declarations are not removed.
    """
    lines = split_lines(text)
    opening = f"{INDENT}subgraph {subgraph_id}"
    if title:
        opening += f"[{title}]"

    block = [opening]
    for member in node_ids or []:
        found = find_declaration(lines, member)
        if found is not None:
            index, decl = found
            body = decl.text(lines[index])
        else:
            body = member
        block.append(f"{INDENT}{INDENT}{body}")
    block.append(f"{INDENT}end")

    insert_at = _append_index(lines)
    lines[insert_at:insert_at] = block
    return _join(lines)


def update_subgraph_title(text: str, subgraph_id: str, new_title: str) -> str:
    """Rewrite the `[title]` of the subgraph's opening line, adding one if absent."""
    lines = split_lines(text)
    for index, line in enumerate(lines):
        match = SUBGRAPH_RE.match(line)
        if match is None or match.group("id") != subgraph_id:
            continue
        if match.group("title") is not None:
            start, end = match.span("title")
            lines[index] = line[:start] + new_title + line[end:]
        else:
            end = match.end("id")
            lines[index] = line[:end] + f"[{new_title}]" + line[end:]
        return _join(lines)
    return text


def delete_subgraph(text: str, subgraph_id: str) -> str:
    """Drop the subgraph's open and end lines and dedent what was inside."""
    group = find_subgraph(text, subgraph_id)
    if group is None:
        return text
    result: list[str] = []
    for index, line in enumerate(split_lines(text)):
        if index in (group.line_start, group.line_end):
            continue
        result.append(_dedent(line) if group.contains_line(index) else line)
    return _join(result)


def add_node_to_subgraph(text: str, subgraph_id: str, node_id: str) -> str:
    """
    Make `node_id` a member of the subgraph.

    A node with exactly one standalone declaration line outside the group
    has that line moved in; otherwise a bare reference line is added just
    before the group's `end`.
    """
    group = find_subgraph(text, subgraph_id)
    if group is None or node_id in group.nodes:
        return text

    lines = split_lines(text)
    member_indent = _indent_of(lines[group.line_start]) + INDENT
    outside = [
        i for i in _standalone_declarations(lines, node_id)
        if not group.line_start <= i <= group.line_end
    ]

    insert_at = group.line_end
    if len(outside) == 1:
        source = outside[0]
        moved = member_indent + lines[source].strip()
        del lines[source]
        if source < insert_at:
            insert_at -= 1
        lines.insert(insert_at, moved)
    else:
        lines.insert(insert_at, member_indent + node_id)
    return _join(lines)


def remove_node_from_subgraph(text: str, subgraph_id: str, node_id: str) -> str:
    """
    Take `node_id` out of the subgraph.

    A node with exactly one standalone declaration line inside the group
    has that line moved to just after the group's `end`. Bare reference
    lines for the node inside the group are removed either way.
    """
    group = find_subgraph(text, subgraph_id)
    if group is None or node_id not in group.nodes:
        return text

    lines = split_lines(text)
    inside = [i for i in _standalone_declarations(lines, node_id) if group.contains_line(i)]
    doomed = [
        i for i, line in enumerate(lines)
        if group.contains_line(i) and line.strip() == node_id
    ]

    if len(inside) == 1:
        source = inside[0]
        lines.insert(group.line_end + 1, _indent_of(lines[group.line_end]) + lines[source].strip())
        doomed.append(source)

    if not doomed:
        return text
    for index in sorted(doomed, reverse=True):
        del lines[index]
    return _join(lines)


# --- Styles ---

def _upsert_style(text: str, target_id: str, style: NodeStyle) -> str:
    lines = split_lines(text)
    existing = scan_styles(text).get(target_id, NodeStyle())
    value = format_style_value(merge_styles(existing, style))
    if not value:
        return text

    pattern = style_line_pattern(target_id)
    found = [i for i, line in enumerate(lines) if pattern.match(line)]
    if found:
        first = found[0]
        indent = pattern.match(lines[first]).group(1)
        lines[first] = f"{indent}style {target_id} {value}"
        for index in reversed(found[1:]):
            del lines[index]
    else:
        lines.insert(_append_index(lines), f"{INDENT}style {target_id} {value}")
    return _join(lines)


def update_node_style(text: str, node_id: str, style: NodeStyle) -> str:
    """
    Merge `style` into the node's style directive, creating it if needed.

    Properties left unset in `style` keep their current values. Later
    duplicate directives for the same id are removed.
    """
    return _upsert_style(text, node_id, style)


def update_subgraph_style(text: str, subgraph_id: str, style: NodeStyle) -> str:
    """Same as update_node_style, for a subgraph id."""
    return _upsert_style(text, subgraph_id, style)

