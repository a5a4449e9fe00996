import random

import pytest

from conftest import el, page
from webpilot.src.page.selector import (
    DomDocument,
    SelectorPath,
    SelectorSegment,
    SelectorSynthesizer,
    css_escape,
)


def _document(*body_children, **kwargs) -> DomDocument:
    return DomDocument.from_payload(page(*body_children, **kwargs))


def _find(document: DomDocument, predicate):
    return next(node for node in document.elements() if predicate(node))


def _random_tree(rng: random.Random, depth: int = 0):
    tags = ["div", "span", "a", "button", "li", "ul", "section", "p"]
    class_pool = ["item", "card", "btn", "primary", "x:y", "1st"]
    children = []
    if depth < 4:
        for _ in range(rng.randint(0, 4)):
            children.append(_random_tree(rng, depth + 1))
    element_id = None
    roll = rng.random()
    if roll < 0.15:
        element_id = f"id{rng.randint(0, 3)}"  # collisions on purpose
    classes = rng.sample(class_pool, rng.randint(0, 2))
    return el(rng.choice(tags), *children, id=element_id, classes=classes)


class TestSynthesis:
    def test_unique_id_wins(self):
        document = _document(el("div", el("button", "Go", id="go")))
        button = _find(document, lambda n: n.tag == "button")
        assert SelectorSynthesizer(document).synthesize(button) == "#go"

    def test_duplicate_id_falls_back_to_structure(self):
        document = _document(
            el("div", el("button", "One", id="dup"), classes=["first"]),
            el("div", el("button", "Two", id="dup"), classes=["second"]),
        )
        second = [n for n in document.elements() if n.tag == "button"][1]
        selector = SelectorSynthesizer(document).synthesize(second)
        assert not selector.startswith("#")
        assert document.query_all(SelectorPath.parse(selector)) == [second]

    def test_nth_of_type_only_when_siblings_share_tag(self):
        document = _document(el("ul", el("li", "a"), el("li", "b"), el("span", "c")))
        items = [n for n in document.elements() if n.tag in ("li", "span")]
        synthesizer = SelectorSynthesizer(document)
        assert synthesizer.synthesize(items[1]) == "li:nth-of-type(2)"
        assert synthesizer.synthesize(items[2]) == "span"

    def test_walks_up_until_unique(self):
        document = _document(
            el("div", el("a", "x", classes=["link"]), classes=["nav"]),
            el("div", el("a", "y", classes=["link"]), classes=["footer"]),
        )
        footer_link = [n for n in document.elements() if n.tag == "a"][1]
        selector = SelectorSynthesizer(document).synthesize(footer_link)
        assert selector == "div.footer:nth-of-type(2) > a.link"

    def test_classes_are_escaped(self):
        document = _document(el("div", "hi", classes=["md:flex"]), el("div", "other"))
        target = _find(document, lambda n: "md:flex" in n.classes)
        selector = SelectorSynthesizer(document).synthesize(target)
        assert "md\\:flex" in selector
        assert document.query_all(SelectorPath.parse(selector)) == [target]

    def test_positional_fallback_is_unique(self):
        document = _document(el("p", "a"), el("p", "b"))
        target = [n for n in document.elements() if n.tag == "p"][1]
        path = SelectorSynthesizer(document)._by_position(target)
        assert path.render() == "html > body:nth-child(2) > p:nth-child(2)"
        assert document.query_all(path) == [target]

    def test_truncated_tree_uses_positions_only(self):
        payload = page(el("button", "Go", id="go"), el("a", "Docs", classes=["nav"]))
        payload["truncated"] = True
        document = DomDocument.from_payload(payload)
        synthesizer = SelectorSynthesizer(document)

        button = _find(document, lambda n: n.tag == "button")
        link = _find(document, lambda n: n.tag == "a")
        assert synthesizer.synthesize(button) == "html > body:nth-child(2) > button:nth-child(1)"
        assert synthesizer.synthesize(link) == "html > body:nth-child(2) > a:nth-child(2)"

    @pytest.mark.parametrize("seed", range(12))
    def test_every_element_gets_a_unique_selector(self, seed):
        rng = random.Random(seed)
        body_children = [_random_tree(rng) for _ in range(rng.randint(1, 5))]
        document = _document(*body_children)
        synthesizer = SelectorSynthesizer(document)
        for node in document.elements():
            selector = synthesizer.synthesize(node)
            assert document.query_all(SelectorPath.parse(selector)) == [node], selector


class TestGrammar:
    def test_css_escape(self):
        assert css_escape("plain-id") == "plain-id"
        assert css_escape("1abc") == "\\31 abc"
        assert css_escape("-") == "\\-"
        assert css_escape("a.b") == "a\\.b"
        assert css_escape("a b") == "a\\ b"

    def test_parse_round_trip(self):
        path = SelectorPath(
            (
                SelectorSegment(tag="div", classes=("x:y", "1st")),
                SelectorSegment(tag="a", nth_of_type=3),
            )
        )
        assert SelectorPath.parse(path.render()) == path

    def test_id_segment(self):
        assert SelectorPath.parse(f"#{css_escape('4real')}").segments[0].element_id == "4real"
