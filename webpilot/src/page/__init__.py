"""Page access: view capability, selector synthesis and snapshot extraction."""
from webpilot.src.page.selector import DomDocument, DomNode, SelectorPath, SelectorSegment, SelectorSynthesizer, css_escape
from webpilot.src.page.snapshot import SnapshotExtractor
from webpilot.src.page.view import LOAD_FAIL, LOAD_FINISH, LOAD_START, PageEventEmitter, PageView, PlaywrightPageView

__all__ = [
    "DomDocument",
    "DomNode",
    "SelectorPath",
    "SelectorSegment",
    "SelectorSynthesizer",
    "css_escape",
    "SnapshotExtractor",
    "LOAD_FAIL",
    "LOAD_FINISH",
    "LOAD_START",
    "PageEventEmitter",
    "PageView",
    "PlaywrightPageView",
]
