"""Snapshot extraction: turns the live page into a bounded ``Snapshot``."""
from __future__ import annotations

import asyncio
import re
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from webpilot.src.page.scripts import DOCUMENT_TREE_SCRIPT, ROBUST_EXTRACTION_SCRIPT, TEXT_CONTENT_SCRIPT
from webpilot.src.page.selector import DomDocument, DomNode, SelectorSynthesizer, css_escape
from webpilot.src.page.view import PageView
from webpilot.src.utils.config import CONFIG, EngineConfig
from webpilot.src.utils.models import BoundingRect, Form, FormField, Heading, PageElement, Snapshot, Viewport

INTERACTIVE_TAGS = ("a", "button", "input", "select", "textarea", "label")
FIELD_TAGS = ("input", "select", "textarea")
HEADING_LEVELS = {f"h{level}": level for level in range(1, 7)}
SKIPPED_TEXT_TAGS = {"script", "style", "noscript"}
ELEMENT_TEXT_LIMIT = 100

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _optional(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text or None


def is_self_hidden(node: DomNode) -> bool:
    """Hidden by its own attributes, inline style or computed style."""
    if node.has_attr("hidden"):
        return True
    if (node.attr("aria-hidden") or "").strip().lower() == "true":
        return True
    if node.inline_hidden or not node.visible:
        return True
    return node.tag == "input" and (node.attr("type") or "").strip().lower() == "hidden"


def hidden_nodes(document: DomDocument) -> Set[int]:
    """Ids of every node that is hidden itself or sits under a hidden ancestor."""
    hidden: Set[int] = set()
    if document.root is None:
        return hidden
    stack: List[Tuple[DomNode, bool]] = [(document.root, False)]
    while stack:
        node, inherited = stack.pop()
        is_hidden = inherited or is_self_hidden(node)
        if is_hidden:
            hidden.add(id(node))
        for child in node.element_children:
            stack.append((child, is_hidden))
    return hidden


class SnapshotExtractor:
    """
    Builds snapshots from a page view.

    ``capture`` never raises. The primary pass serializes the element tree and
    extracts headings, allowlisted interactive elements, forms and text in
    Python. When it yields nothing at all, a simplified pass runs with looser
    visibility filtering and ``#id``/tag selectors. If that also fails, an
    empty snapshot comes back.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        max_nodes: int = 8000,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.config = config or CONFIG.engine
        self.max_nodes = max_nodes
        self._log_callback = log_callback

    def _log(self, message: str) -> None:
        print(f"[Snapshot] {message}")
        if self._log_callback:
            self._log_callback(message)

    async def capture(self, view: PageView) -> Snapshot:
        url = await self._read(view.get_url, "")
        title = await self._read(view.get_title, "")

        try:
            snapshot = await self._primary(view, url, title)
        except Exception as exc:
            self._log(f"Primary extraction failed: {exc}")
            snapshot = None
        if snapshot is not None and not snapshot.is_blank:
            return snapshot

        self._log("Primary extraction returned no data, retrying with robust extraction")
        try:
            return await self._robust(view, url, title)
        except Exception as exc:
            self._log(f"Robust extraction failed: {exc}")
        return Snapshot.empty(url=url, title=title)

    async def _read(self, getter: Callable[[], Any], default: str) -> str:
        try:
            value = await asyncio.wait_for(getter(), self.config.script_timeout)
        except Exception as exc:
            self._log(f"Could not read page property: {exc}")
            return default
        return str(value or "")

    async def _evaluate(self, view: PageView, script: str, arg: Any = None) -> Any:
        return await asyncio.wait_for(view.evaluate(script, arg), self.config.script_timeout)

    # ------------------------------------------------------------------
    # Primary extraction
    # ------------------------------------------------------------------
    async def _primary(self, view: PageView, url: str, title: str) -> Snapshot:
        payload = await self._evaluate(view, DOCUMENT_TREE_SCRIPT, {"maxNodes": self.max_nodes})
        document = DomDocument.from_payload(payload)
        if document.truncated:
            self._log(f"Document tree truncated at {self.max_nodes} nodes")
        return self.snapshot_from_document(document, url=url, title=title)

    def snapshot_from_document(self, document: DomDocument, url: str = "", title: str = "") -> Snapshot:
        headings, elements, forms = self.extract_structure(document)
        width, height = document.viewport
        return Snapshot(
            url=url,
            title=title,
            viewport=Viewport(width=width, height=height),
            headings=headings,
            elements=elements,
            forms=forms,
            text=self.extract_text(document),
            extraction_mode="primary",
        )

    def extract_structure(self, document: DomDocument) -> Tuple[List[Heading], List[PageElement], List[Form]]:
        synthesizer = SelectorSynthesizer(document)
        hidden = hidden_nodes(document)
        headings: List[Heading] = []
        elements: List[PageElement] = []
        forms: List[Form] = []

        for node in document.elements():
            if id(node) in hidden:
                continue
            level = HEADING_LEVELS.get(node.tag)
            if level is not None and len(headings) < self.config.max_headings:
                headings.append(
                    Heading(
                        level=level,
                        text=collapse_whitespace(node.inner_text or node.text_content()),
                        selector=synthesizer.synthesize(node),
                    )
                )
            elif node.tag in INTERACTIVE_TAGS and len(elements) < self.config.max_elements:
                elements.append(self._element(node, synthesizer))
            elif node.tag == "form" and len(forms) < self.config.max_forms:
                forms.append(self._form(node, synthesizer, hidden))
        return headings, elements, forms

    def _element(self, node: DomNode, synthesizer: SelectorSynthesizer) -> PageElement:
        text = (node.inner_text or "").strip() or node.text_content().strip() or (node.value or "").strip()
        rect = node.rect or {}
        return PageElement(
            tag=node.tag,
            role=_optional(node.attr("role")),
            type=_optional(node.attr("type")) if node.tag == "input" else None,
            name=_optional(node.attr("name")),
            id=node.id,
            classes=list(node.classes),
            text=text[:ELEMENT_TEXT_LIMIT],
            placeholder=_optional(node.attr("placeholder")),
            aria_label=_optional(node.attr("aria-label")),
            href=_optional(node.attr("href")) if node.tag == "a" else None,
            bounding_rect=BoundingRect(
                x=float(rect.get("x") or 0),
                y=float(rect.get("y") or 0),
                width=float(rect.get("width") or 0),
                height=float(rect.get("height") or 0),
            ),
            selector=synthesizer.synthesize(node),
        )

    def _form(self, node: DomNode, synthesizer: SelectorSynthesizer, hidden: Set[int]) -> Form:
        fields = [
            FormField(
                selector=synthesizer.synthesize(child),
                name=_optional(child.attr("name")),
                type=_optional(child.attr("type")) or (child.tag if child.tag != "input" else "text"),
                placeholder=_optional(child.attr("placeholder")),
                aria_label=_optional(child.attr("aria-label")),
            )
            for child in node.iter_subtree()
            if child is not node and child.tag in FIELD_TAGS and id(child) not in hidden
        ]
        return Form(
            id=node.id,
            action=_optional(node.attr("action")),
            selector=synthesizer.synthesize(node),
            fields=fields,
        )

    def extract_text(self, document: DomDocument) -> str:
        start = document.body or document.root
        if start is None:
            return ""
        parts: List[str] = []
        stack: List[Any] = [start]
        while stack:
            item = stack.pop()
            if isinstance(item, str):
                stripped = item.strip()
                if stripped:
                    parts.append(stripped)
                continue
            if item.tag in SKIPPED_TEXT_TAGS or not item.visible or item.inline_hidden:
                continue
            if item.tag == "input" and (item.attr("type") or "").lower() != "hidden":
                typed = item.value or item.attr("placeholder")
                if typed:
                    parts.append(typed)
            if item.tag == "img" and item.attr("alt"):
                parts.append(item.attr("alt") or "")
            stack.extend(reversed(item.children))
        return collapse_whitespace(" ".join(parts))[: self.config.max_text_chars]

    # ------------------------------------------------------------------
    # Robust extraction
    # ------------------------------------------------------------------
    async def _robust(self, view: PageView, url: str, title: str) -> Snapshot:
        payload = await self._evaluate(view, ROBUST_EXTRACTION_SCRIPT)
        try:
            text = await self._evaluate(view, TEXT_CONTENT_SCRIPT)
        except Exception as exc:
            self._log(f"Text extraction failed: {exc}")
            text = ""
        return self.snapshot_from_flat_records(payload or {}, str(text or ""), url=url, title=title)

    def snapshot_from_flat_records(
        self, payload: Dict[str, Any], text: str, url: str = "", title: str = ""
    ) -> Snapshot:
        viewport = payload.get("viewport") or {}
        elements: List[PageElement] = []
        for record in (payload.get("elements") or [])[: self.config.max_elements]:
            tag = str(record.get("tag") or "").lower()
            if not tag:
                continue
            rect = record.get("rect") or {}
            elements.append(
                PageElement(
                    tag=tag,
                    role=_optional(record.get("role")),
                    type=_optional(record.get("type")),
                    name=_optional(record.get("name")),
                    id=_optional(record.get("id")),
                    classes=[str(name) for name in record.get("classes") or []],
                    text=str(record.get("text") or "")[:ELEMENT_TEXT_LIMIT],
                    placeholder=_optional(record.get("placeholder")),
                    aria_label=_optional(record.get("ariaLabel")),
                    href=_optional(record.get("href")),
                    bounding_rect=BoundingRect(**{key: float(rect.get(key) or 0) for key in ("x", "y", "width", "height")}),
                    selector=self._simple_selector(tag, record.get("id")),
                )
            )
        headings: List[Heading] = []
        for record in (payload.get("headings") or [])[: self.config.max_headings]:
            try:
                level = int(record.get("level"))
            except (TypeError, ValueError):
                continue
            if not 1 <= level <= 6:
                continue
            headings.append(
                Heading(
                    level=level,
                    text=collapse_whitespace(str(record.get("text") or "")),
                    selector=self._simple_selector(f"h{level}", record.get("id")),
                )
            )
        return Snapshot(
            url=url,
            title=title,
            viewport=Viewport(width=int(viewport.get("width") or 800), height=int(viewport.get("height") or 600)),
            headings=headings,
            elements=elements,
            text=collapse_whitespace(text)[: self.config.max_text_chars],
            extraction_mode="robust",
        )

    @staticmethod
    def _simple_selector(tag: str, element_id: Any) -> str:
        if element_id:
            return "#" + css_escape(str(element_id))
        return tag
