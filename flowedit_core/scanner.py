"""
Entity scanner - Recover nodes, edges, subgraphs and styles from DSL text.

The scanner is deliberately not a parser. It works line by line with
regular expressions plus open/close bracket matching, so that text which
is half-typed or otherwise invalid still yields whatever entities can be
recognised. Nothing in this module raises on unexpected input; a line
that does not match simply contributes nothing.

Known limitation: a label is cut at the first occurrence of its closing
sequence, so `A[a]b]` yields the label "a".
"""

import re
from typing import NamedTuple, Optional

from .models import (
    ArrowType,
    EdgeInfo,
    FlowDirection,
    NodeStyle,
    ParsedNode,
    Subgraph,
    TextLocation,
    CLOSING_BRACKETS,
    OPENER_SHAPES,
    RESERVED_WORDS,
)
from .styles import parse_style_line

ID_PATTERN = r"[A-Za-z_][A-Za-z0-9_]*"
_BOUNDARY_BEFORE = r"(?<![A-Za-z0-9_])"
_BOUNDARY_AFTER = r"(?![A-Za-z0-9_])"

# Longest openers first so "([" wins over "("
OPEN_PATTERN = r"\(\[|\[\(|\[\[|\(\(|\{\{|\[/|\[\\|\[|\(|\{|>"
_CLOSE_PATTERN = r"\]\)|\)\]|\]\]|\)\)|\}\}|/\]|\\\]|\]|\)|\}"

# Thick, dotted, then plain; plain covers "-->", "--->", "---->"...
ARROW_PATTERN = r"={2,}>|-\.+-*>|-{2,}>"

# Inline declaration that may follow an edge endpoint, e.g. A[Start] -->
DECL_PATTERN = rf"(?:{OPEN_PATTERN}).*?(?:{_CLOSE_PATTERN})(?::::\w+)?"

_NODE_OPEN_RE = re.compile(rf"{_BOUNDARY_BEFORE}(?P<id>{ID_PATTERN})(?P<open>{OPEN_PATTERN})")
_TOKEN_RE = re.compile(rf"{_BOUNDARY_BEFORE}{ID_PATTERN}{_BOUNDARY_AFTER}")
_ARROW_RE = re.compile(ARROW_PATTERN)
_EDGE_LABEL_RE = re.compile(rf"(?:{ARROW_PATTERN})\s*(\|[^|]*\|)")
_CLASS_SUFFIX_RE = re.compile(r":::\w+")

EDGE_RE = re.compile(
    rf"{_BOUNDARY_BEFORE}(?P<source>{ID_PATTERN})(?P<source_decl>{DECL_PATTERN})?"
    rf"\s*(?P<arrow>{ARROW_PATTERN})(?P<label_part>\s*\|(?P<label>[^|]*)\|)?"
    rf"\s*(?P<target>{ID_PATTERN})"
)

HEADER_RE = re.compile(
    r"^(?P<prefix>\s*(?:flowchart|graph)\s+)(?P<direction>LR|RL|TB|BT|TD)\b",
    re.IGNORECASE | re.MULTILINE,
)
_HEADER_LINE_RE = re.compile(r"^\s*(?:flowchart|graph)\b", re.IGNORECASE)

SUBGRAPH_RE = re.compile(
    rf"^(?P<indent>\s*)subgraph\s+(?P<id>{ID_PATTERN})"
    r"(?:\s*\[(?P<title>[^\]]*)\])?"
)
_SUBGRAPH_LINE_RE = re.compile(r"^\s*subgraph\b")
END_RE = re.compile(r"^\s*end\s*$")

# Mermaid render ids look like "flowchart-A-0"
_RENDERED_ID_RE = re.compile(r"flowchart-(\w+)-\d+")

_DIRECTIVE_WORDS = frozenset({
    "style", "classdef", "class", "click", "linkstyle", "direction",
    "subgraph", "end", "flowchart", "graph",
})


class Declaration(NamedTuple):
    """A bracketed node declaration found on a single line."""
    node_id: str
    opener: str
    closer: str
    label: str
    start: int        # index of the first character of the id
    label_start: int
    label_end: int
    end: int          # index just past the closing sequence

    def text(self, line: str) -> str:
        """The declaration exactly as written, e.g. `B{Decision}`."""
        return line[self.start:self.end]


def split_lines(text: str) -> list[str]:
    return text.split("\n")


def is_directive_line(line: str) -> bool:
    """True for comments, headers and keyword lines that never declare nodes."""
    stripped = line.strip()
    if not stripped:
        return True
    if stripped.startswith("%%"):
        return True
    first = re.split(r"[\s\[]", stripped, maxsplit=1)[0].lower()
    return first in _DIRECTIVE_WORDS


def is_header_line(line: str) -> bool:
    return bool(_HEADER_LINE_RE.match(line))


def has_arrow(line: str) -> bool:
    return bool(_ARROW_RE.search(line))


def token_pattern(token: str) -> re.Pattern:
    """Whole-token matcher for an identifier."""
    return re.compile(rf"{_BOUNDARY_BEFORE}{re.escape(token)}{_BOUNDARY_AFTER}")


def normalize_arrow(arrow: str) -> ArrowType:
    """Map any recognised arrow spelling onto its canonical ArrowType."""
    if arrow.startswith("="):
        return ArrowType.THICK
    if "." in arrow:
        return ArrowType.DOTTED
    if arrow.count("-") == 2:
        return ArrowType.ARROW
    return ArrowType.LONG


def _blank(text: str, start: int, end: int) -> str:
    return text[:start] + " " * (end - start) + text[end:]


def _mask_edge_labels(line: str) -> str:
    """Blank out `|label|` segments that follow an arrow, keeping offsets."""
    masked = line
    for match in _EDGE_LABEL_RE.finditer(line):
        masked = _blank(masked, match.start(1), match.end(1))
    for match in _CLASS_SUFFIX_RE.finditer(line):
        masked = _blank(masked, match.start(), match.end())
    return masked


def iter_declarations(line: str) -> list[Declaration]:
    """
    Find every bracketed declaration on a line, left to right.

    Scanning resumes after each closing sequence, so identifiers that
    appear inside a label are not reported as separate declarations.
    An opener without its closer ends the scan for this line.
    """
    if is_directive_line(line):
        return []

    masked = _mask_edge_labels(line)
    found: list[Declaration] = []
    pos = 0
    while True:
        match = _NODE_OPEN_RE.search(masked, pos)
        if match is None:
            break
        opener = match.group("open")
        closer = CLOSING_BRACKETS[opener]
        close_at = masked.find(closer, match.end())
        if close_at == -1:
            break
        node_id = match.group("id")
        if node_id.lower() not in RESERVED_WORDS:
            found.append(Declaration(
                node_id=node_id,
                opener=opener,
                closer=closer,
                label=line[match.end():close_at],
                start=match.start(),
                label_start=match.end(),
                label_end=close_at,
                end=close_at + len(closer),
            ))
        pos = close_at + len(closer)
    return found


def mask_node_labels(line: str) -> str:
    """
    Fill every declaration label with NUL characters, keeping offsets.

    Arrows and identifiers typed inside a label, as in `C[go --> home]`,
    then no longer look like links.
    """
    masked = line
    for decl in iter_declarations(line):
        masked = (
            masked[:decl.label_start]
            + "\x00" * (decl.label_end - decl.label_start)
            + masked[decl.label_end:]
        )
    return masked


def line_tokens(line: str) -> list[str]:
    """
    Identifier tokens on a line outside of labels, in order, without repeats.

    Covers both declarations (`A[x]` -> "A") and bare references
    (`A --> B` -> "A", "B"). DSL keywords are excluded.
    """
    if is_directive_line(line):
        return []
    masked = _mask_edge_labels(line)
    for decl in iter_declarations(line):
        masked = _blank(masked, decl.label_start - len(decl.opener), decl.end)
    tokens: list[str] = []
    for match in _TOKEN_RE.finditer(masked):
        token = match.group(0)
        if token.lower() in RESERVED_WORDS or token in tokens:
            continue
        tokens.append(token)
    return tokens


# --- Scanners ---

def scan_nodes(text: str) -> list[ParsedNode]:
    """
    Scan declared nodes, then nodes that are only referenced by edges.

    Declared ids are deduplicated by first occurrence. A node referenced
    only on an edge line gets its id as its label.
    """
    lines = split_lines(text)
    nodes: list[ParsedNode] = []
    seen: set[str] = set()

    for index, line in enumerate(lines):
        for decl in iter_declarations(line):
            if decl.node_id in seen:
                continue
            seen.add(decl.node_id)
            nodes.append(ParsedNode(
                id=decl.node_id,
                label=decl.label,
                shape=OPENER_SHAPES[decl.opener],
                line_index=index,
            ))

    for index, line in enumerate(lines):
        if not has_arrow(line):
            continue
        for token in line_tokens(line):
            if token in seen:
                continue
            seen.add(token)
            nodes.append(ParsedNode(id=token, label=token, line_index=index))

    return nodes


def scan_edges(text: str) -> list[EdgeInfo]:
    """Scan at most one edge per line: `<id> <arrow> [|label|] <id>`."""
    edges: list[EdgeInfo] = []
    for index, line in enumerate(split_lines(text)):
        if is_directive_line(line):
            continue
        match = EDGE_RE.search(mask_node_labels(line))
        if match is None:
            continue
        if match.group("source").lower() in RESERVED_WORDS:
            continue
        edges.append(EdgeInfo(
            source=match.group("source"),
            target=match.group("target"),
            label=match.group("label") or "",
            arrow_type=normalize_arrow(match.group("arrow")),
            line_index=index,
        ))
    return edges


def scan_subgraphs(text: str) -> list[Subgraph]:
    """
    Scan subgraph spans with an explicit stack.

    A subgraph's `nodes` lists the identifiers that appear while it is the
    innermost open subgraph; members of a nested subgraph are not merged
    into the outer one. Subgraphs that are never closed are dropped, and a
    stray `end` is ignored. Results are in closing order.
    """
    result: list[Subgraph] = []
    stack: list[dict] = []

    for index, line in enumerate(split_lines(text)):
        if _SUBGRAPH_LINE_RE.match(line):
            match = SUBGRAPH_RE.match(line)
            frame = {"id": None, "title": "", "start": index, "nodes": []}
            if match:
                frame["id"] = match.group("id")
                title = match.group("title")
                frame["title"] = title if title is not None else match.group("id")
            stack.append(frame)
            continue

        if END_RE.match(line):
            if not stack:
                continue
            frame = stack.pop()
            if frame["id"] is not None:
                result.append(Subgraph(
                    id=frame["id"],
                    title=frame["title"],
                    nodes=frame["nodes"],
                    line_start=frame["start"],
                    line_end=index,
                ))
            continue

        if stack:
            members = stack[-1]["nodes"]
            for token in line_tokens(line):
                if token not in members:
                    members.append(token)

    return result


def scan_styles(text: str) -> dict[str, NodeStyle]:
    """Map each styled id to its properties. The first directive per id wins."""
    styles: dict[str, NodeStyle] = {}
    for line in split_lines(text):
        parsed = parse_style_line(line)
        if parsed is None:
            continue
        target_id, style = parsed
        styles.setdefault(target_id, style)
    return styles


def scan_node_ids(text: str) -> list[str]:
    """Every id in use: nodes, subgraphs and their members, style targets."""
    ids: list[str] = [node.id for node in scan_nodes(text)]
    seen = set(ids)
    for subgraph in scan_subgraphs(text):
        for candidate in [subgraph.id, *subgraph.nodes]:
            if candidate not in seen:
                seen.add(candidate)
                ids.append(candidate)
    for target_id in scan_styles(text):
        if target_id not in seen:
            seen.add(target_id)
            ids.append(target_id)
    return ids


def get_direction(text: str) -> FlowDirection:
    """Read the layout direction from the header; LR when there is none."""
    match = HEADER_RE.search(text)
    if match is None:
        return FlowDirection.LR
    value = match.group("direction").upper()
    if value == "TD":
        return FlowDirection.TB
    return FlowDirection(value)


def extract_target_id(rendered_id: str) -> Optional[str]:
    """
    Recover the logical node id from a rendered element id.

    "flowchart-A-0" -> "A"; otherwise a trailing "-<n>" is stripped.
    """
    match = _RENDERED_ID_RE.search(rendered_id)
    if match:
        return match.group(1)
    stripped = re.sub(r"-\d+$", "", rendered_id)
    return stripped or None


# --- Lookups shared with the mutation engine ---

def find_declaration(lines: list[str], node_id: str) -> Optional[tuple[int, Declaration]]:
    """First line declaring `node_id` with brackets, and the declaration."""
    for index, line in enumerate(lines):
        for decl in iter_declarations(line):
            if decl.node_id == node_id:
                return index, decl
    return None


def find_subgraph(text: str, subgraph_id: str) -> Optional[Subgraph]:
    """The closed subgraph with this id that opens first."""
    matches = [s for s in scan_subgraphs(text) if s.id == subgraph_id]
    if not matches:
        return None
    return min(matches, key=lambda s: s.line_start)


def locate_node(text: str, node_id: str) -> Optional[TextLocation]:
    """Where to reveal a node: its first declaration, else its first mention."""
    lines = split_lines(text)
    found = find_declaration(lines, node_id)
    if found is not None:
        index, decl = found
        return TextLocation(line=index, column=decl.start)

    pattern = token_pattern(node_id)
    for index, line in enumerate(lines):
        if is_header_line(line):
            continue
        match = pattern.search(mask_node_labels(line))
        if match:
            return TextLocation(line=index, column=match.start())
    return None


def locate_edge(text: str, edge: EdgeInfo) -> Optional[TextLocation]:
    """Where to reveal an edge: the first line linking source to target."""
    pattern = re.compile(
        rf"{_BOUNDARY_BEFORE}{re.escape(edge.source)}(?:{DECL_PATTERN})?"
        rf"\s*(?:{ARROW_PATTERN})(?:\s*\|[^|]*\|)?"
        rf"\s*{re.escape(edge.target)}{_BOUNDARY_AFTER}"
    )
    lines = split_lines(text)
    if 0 <= edge.line_index < len(lines):
        match = pattern.search(mask_node_labels(lines[edge.line_index]))
        if match:
            return TextLocation(line=edge.line_index, column=match.start())
    for index, line in enumerate(lines):
        match = pattern.search(mask_node_labels(line))
        if match:
            return TextLocation(line=index, column=match.start())
    return None
