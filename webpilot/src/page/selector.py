"""
Stable selector synthesis over a serialized document tree.

The page is serialized once per observation (see ``scripts.DOCUMENT_TREE_SCRIPT``)
into :class:`DomDocument`. Selectors are built as :class:`SelectorPath`
objects, checked for uniqueness against the same tree, and rendered to CSS.

Priority order:

1. ``#id`` when the identifier is unique in the document.
2. ``tag.class...:nth-of-type(k)`` segments joined with `` > ``, walking from
   the element toward the root until the path matches exactly one element.
3. ``tag:nth-child(k)`` at every level from the element to the root.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union


@dataclass(slots=True, eq=False)
class DomNode:
    tag: str
    id: Optional[str] = None
    classes: List[str] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)
    visible: bool = True
    inline_hidden: bool = False
    rect: Dict[str, float] = field(default_factory=dict)
    inner_text: Optional[str] = None
    value: Optional[str] = None
    children: List[Union["DomNode", str]] = field(default_factory=list)
    parent: Optional["DomNode"] = None
    child_index: int = 1
    type_index: int = 1
    type_count: int = 1

    @property
    def element_children(self) -> List["DomNode"]:
        return [child for child in self.children if isinstance(child, DomNode)]

    def attr(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def has_attr(self, name: str) -> bool:
        return name in self.attributes

    def iter_subtree(self) -> Iterator["DomNode"]:
        """Pre-order walk over this node and its element descendants."""
        stack: List[DomNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.element_children))

    def text_content(self) -> str:
        parts: List[str] = []
        stack: List[Union[DomNode, str]] = [self]
        while stack:
            item = stack.pop()
            if isinstance(item, str):
                parts.append(item)
            else:
                stack.extend(reversed(item.children))
        return "".join(parts)

    def ancestors(self) -> Iterator["DomNode"]:
        current = self.parent
        while current is not None:
            yield current
            current = current.parent


def _node_from_payload(payload: Dict[str, Any]) -> DomNode:
    return DomNode(
        tag=str(payload.get("tag") or "").lower(),
        id=payload.get("id") or None,
        classes=[str(name) for name in payload.get("classes") or [] if name],
        attributes={str(k): "" if v is None else str(v) for k, v in (payload.get("attrs") or {}).items()},
        visible=bool(payload.get("visible", True)),
        inline_hidden=bool(payload.get("inlineHidden", False)),
        rect=dict(payload.get("rect") or {}),
        inner_text=payload.get("innerText"),
        value=payload.get("value"),
    )


class DomDocument:
    """In-memory element tree with the indexes the selector matcher needs."""

    def __init__(
        self,
        root: Optional[DomNode],
        viewport: Tuple[int, int] = (0, 0),
        truncated: bool = False,
    ) -> None:
        self.root = root
        self.viewport = viewport
        self.truncated = truncated
        self._by_tag: Dict[str, List[DomNode]] = defaultdict(list)
        self._by_id: Dict[str, List[DomNode]] = defaultdict(list)
        self._order: List[DomNode] = []
        if root is not None:
            self._index(root)

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> "DomDocument":
        """Build a document from the tree script's JSON result."""
        if not isinstance(payload, dict):
            return cls(None)
        viewport_raw = payload.get("viewport") or {}
        viewport = (int(viewport_raw.get("width") or 0), int(viewport_raw.get("height") or 0))
        root_payload = payload.get("root")
        if not isinstance(root_payload, dict):
            return cls(None, viewport)

        root = _node_from_payload(root_payload)
        stack: List[Tuple[DomNode, Dict[str, Any]]] = [(root, root_payload)]
        while stack:
            node, raw = stack.pop()
            for raw_child in raw.get("children") or []:
                if not isinstance(raw_child, dict):
                    continue
                if "tag" not in raw_child:
                    text = raw_child.get("text")
                    if text:
                        node.children.append(str(text))
                    continue
                child = _node_from_payload(raw_child)
                child.parent = node
                node.children.append(child)
                stack.append((child, raw_child))
        return cls(root, viewport, bool(payload.get("truncated")))

    def _index(self, root: DomNode) -> None:
        for node in root.iter_subtree():
            self._order.append(node)
            self._by_tag[node.tag].append(node)
            if node.id:
                self._by_id[node.id].append(node)
            siblings = node.element_children
            counts: Dict[str, int] = defaultdict(int)
            for position, child in enumerate(siblings, start=1):
                child.child_index = position
                counts[child.tag] += 1
                child.type_index = counts[child.tag]
            for child in siblings:
                child.type_count = counts[child.tag]

    def elements(self) -> List[DomNode]:
        return list(self._order)

    @property
    def body(self) -> Optional[DomNode]:
        bodies = self._by_tag.get("body")
        return bodies[0] if bodies else None

    def id_count(self, element_id: str) -> int:
        return len(self._by_id.get(element_id, ()))

    def query_all(self, path: "SelectorPath", limit: Optional[int] = None) -> List[DomNode]:
        if not path.segments:
            return []
        last = path.segments[-1]
        if last.element_id is not None:
            candidates = self._by_id.get(last.element_id, [])
        elif last.tag is not None:
            candidates = self._by_tag.get(last.tag, [])
        else:
            candidates = self._order
        matches: List[DomNode] = []
        for node in candidates:
            if path.matches(node):
                matches.append(node)
                if limit is not None and len(matches) >= limit:
                    break
        return matches

    def count(self, path: "SelectorPath", limit: int = 2) -> int:
        return len(self.query_all(path, limit=limit))


# ---------------------------------------------------------------------------
# Selector grammar
# ---------------------------------------------------------------------------


def css_escape(value: str) -> str:
    """Escape an identifier the way ``CSS.escape`` does."""
    out: List[str] = []
    length = len(value)
    for index, char in enumerate(value):
        code = ord(char)
        if code == 0:
            out.append("\ufffd")
        elif (
            0x1 <= code <= 0x1F
            or code == 0x7F
            or (index == 0 and char.isdigit() and char.isascii())
            or (index == 1 and char.isdigit() and char.isascii() and value[0] == "-")
        ):
            out.append(f"\\{code:x} ")
        elif index == 0 and length == 1 and char == "-":
            out.append("\\-")
        elif code >= 0x80 or char in "-_" or (char.isascii() and char.isalnum()):
            out.append(char)
        else:
            out.append("\\" + char)
    return "".join(out)


@dataclass(frozen=True, slots=True)
class SelectorSegment:
    """One compound selector: tag, id, classes and a positional pseudo-class."""

    tag: Optional[str] = None
    element_id: Optional[str] = None
    classes: Tuple[str, ...] = ()
    nth_of_type: Optional[int] = None
    nth_child: Optional[int] = None

    def matches(self, node: DomNode) -> bool:
        if self.tag is not None and node.tag != self.tag:
            return False
        if self.element_id is not None and node.id != self.element_id:
            return False
        if self.classes and not set(self.classes).issubset(node.classes):
            return False
        if self.nth_of_type is not None and node.type_index != self.nth_of_type:
            return False
        if self.nth_child is not None and node.child_index != self.nth_child:
            return False
        return True

    def render(self) -> str:
        text = self.tag or ""
        if self.element_id is not None:
            text += "#" + css_escape(self.element_id)
        for name in self.classes:
            text += "." + css_escape(name)
        if self.nth_of_type is not None:
            text += f":nth-of-type({self.nth_of_type})"
        if self.nth_child is not None:
            text += f":nth-child({self.nth_child})"
        return text or "*"


@dataclass(frozen=True, slots=True)
class SelectorPath:
    segments: Tuple[SelectorSegment, ...]

    def matches(self, node: DomNode) -> bool:
        current: Optional[DomNode] = node
        for segment in reversed(self.segments):
            if current is None or not segment.matches(current):
                return False
            current = current.parent
        return True

    def render(self) -> str:
        return " > ".join(segment.render() for segment in self.segments)

    def __str__(self) -> str:
        return self.render()

    @classmethod
    def parse(cls, text: str) -> "SelectorPath":
        """Parse the selector subset :meth:`render` produces."""
        return cls(tuple(_parse_segment(part.strip()) for part in text.split(" > ")))


def _read_ident(text: str, pos: int) -> Tuple[str, int]:
    out: List[str] = []
    while pos < len(text):
        char = text[pos]
        if char == "\\":
            pos += 1
            hex_digits = ""
            while pos < len(text) and len(hex_digits) < 6 and text[pos] in "0123456789abcdefABCDEF":
                hex_digits += text[pos]
                pos += 1
            if hex_digits:
                out.append(chr(int(hex_digits, 16)))
                if pos < len(text) and text[pos] == " ":
                    pos += 1
            elif pos < len(text):
                out.append(text[pos])
                pos += 1
            continue
        if char in ".#:[>" or char.isspace():
            break
        out.append(char)
        pos += 1
    return "".join(out), pos


def _parse_segment(text: str) -> SelectorSegment:
    tag, pos = _read_ident(text, 0)
    element_id: Optional[str] = None
    classes: List[str] = []
    nth_of_type: Optional[int] = None
    nth_child: Optional[int] = None
    while pos < len(text):
        marker = text[pos]
        if marker == "#":
            element_id, pos = _read_ident(text, pos + 1)
        elif marker == ".":
            name, pos = _read_ident(text, pos + 1)
            classes.append(name)
        elif marker == ":":
            close = text.index(")", pos)
            pseudo = text[pos + 1 : close]
            name, _, argument = pseudo.partition("(")
            if name == "nth-of-type":
                nth_of_type = int(argument)
            elif name == "nth-child":
                nth_child = int(argument)
            else:
                raise ValueError(f"unsupported pseudo-class: {name}")
            pos = close + 1
        else:
            raise ValueError(f"unexpected character {marker!r} in selector {text!r}")
    return SelectorSegment(
        tag=tag.lower() or None,
        element_id=element_id,
        classes=tuple(classes),
        nth_of_type=nth_of_type,
        nth_child=nth_child,
    )


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------


class SelectorSynthesizer:
    """Builds selectors that match exactly one element of ``document``."""

    def __init__(self, document: DomDocument) -> None:
        self.document = document
        self._cache: Dict[int, SelectorPath] = {}

    def synthesize(self, node: DomNode) -> str:
        return self.synthesize_path(node).render()

    def synthesize_path(self, node: DomNode) -> SelectorPath:
        cached = self._cache.get(id(node))
        if cached is not None:
            return cached
        if self.document.truncated:
            # Unserialized nodes may share an id or structure; only positions are exact.
            path = self._by_position(node)
        else:
            path = self._by_id(node) or self._by_structure(node) or self._by_position(node)
        self._cache[id(node)] = path
        return path

    def _by_id(self, node: DomNode) -> Optional[SelectorPath]:
        if node.id and self.document.id_count(node.id) == 1:
            return SelectorPath((SelectorSegment(element_id=node.id),))
        return None

    def _by_structure(self, node: DomNode) -> Optional[SelectorPath]:
        segments: List[SelectorSegment] = []
        current: Optional[DomNode] = node
        while current is not None:
            segments.insert(
                0,
                SelectorSegment(
                    tag=current.tag,
                    classes=tuple(current.classes),
                    nth_of_type=current.type_index if current.type_count > 1 else None,
                ),
            )
            path = SelectorPath(tuple(segments))
            if self.document.count(path) == 1:
                return path
            current = current.parent
        return None

    def _by_position(self, node: DomNode) -> SelectorPath:
        segments: List[SelectorSegment] = []
        current: Optional[DomNode] = node
        while current is not None:
            if current.parent is None:
                segments.insert(0, SelectorSegment(tag=current.tag))
            else:
                segments.insert(0, SelectorSegment(tag=current.tag, nth_child=current.child_index))
            current = current.parent
        return SelectorPath(tuple(segments))
