"""
In-page functions evaluated through the page view.

Every script here is a constant. Inputs (selectors, path expressions, search
text, typed values) always travel as the evaluation argument, never by
splicing them into the script source.
"""
from __future__ import annotations

TARGET_MARKER = "data-webpilot-target"

# Serializes the element tree once per observation. Selector synthesis,
# visibility filtering and text extraction run in Python over this tree.
DOCUMENT_TREE_SCRIPT = """
(options) => {
  const maxNodes = (options && options.maxNodes) || 8000;
  const innerTextTags = new Set([
    "A", "BUTTON", "INPUT", "SELECT", "TEXTAREA", "LABEL", "OPTION",
    "H1", "H2", "H3", "H4", "H5", "H6"
  ]);
  const keptAttributes = [
    "role", "type", "name", "placeholder", "aria-label", "aria-hidden",
    "hidden", "href", "alt", "title", "action", "contenteditable"
  ];
  let count = 0;
  let truncated = false;

  const computedVisible = (el) => {
    try {
      const style = window.getComputedStyle(el);
      return style.display !== "none" && style.visibility !== "hidden";
    } catch (e) {
      return true;
    }
  };

  const serialize = (el) => {
    count += 1;
    const attrs = {};
    for (const name of keptAttributes) {
      if (el.hasAttribute(name)) attrs[name] = el.getAttribute(name);
    }
    let rect = { x: 0, y: 0, width: 0, height: 0 };
    try {
      const box = el.getBoundingClientRect();
      rect = { x: box.x, y: box.y, width: box.width, height: box.height };
    } catch (e) {}
    const inline = el.style || {};
    const node = {
      tag: el.tagName.toLowerCase(),
      id: typeof el.id === "string" && el.id ? el.id : null,
      classes: Array.from(el.classList || []),
      attrs,
      visible: computedVisible(el),
      inlineHidden: inline.display === "none" || inline.visibility === "hidden",
      rect,
      children: []
    };
    if (innerTextTags.has(el.tagName)) node.innerText = (el.innerText || "").trim();
    if (["INPUT", "TEXTAREA", "SELECT"].includes(el.tagName) && typeof el.value === "string") {
      node.value = el.value;
    }
    for (const child of el.childNodes) {
      if (child.nodeType === Node.TEXT_NODE) {
        const text = child.textContent;
        if (text && text.trim()) node.children.push({ text });
      } else if (child.nodeType === Node.ELEMENT_NODE) {
        if (count >= maxNodes) {
          truncated = true;
          break;
        }
        node.children.push(serialize(child));
      }
    }
    return node;
  };

  const root = document.documentElement;
  return {
    viewport: { width: window.innerWidth || 0, height: window.innerHeight || 0 },
    root: root ? serialize(root) : null,
    truncated
  };
}
"""

# Degraded extraction: flat records, computed-style visibility only.
ROBUST_EXTRACTION_SCRIPT = """
() => {
  const visible = (el) => {
    const style = window.getComputedStyle(el);
    return style.display !== "none" && style.visibility !== "hidden";
  };
  const elements = [];
  for (const el of document.querySelectorAll("a,button,input,select,textarea,label")) {
    try {
      const box = el.getBoundingClientRect();
      if (!visible(el) || box.width <= 0 || box.height <= 0) continue;
      elements.push({
        tag: el.tagName.toLowerCase(),
        id: el.id || null,
        classes: Array.from(el.classList || []),
        role: el.getAttribute("role"),
        type: el.getAttribute("type"),
        name: el.getAttribute("name"),
        placeholder: el.getAttribute("placeholder"),
        ariaLabel: el.getAttribute("aria-label"),
        href: el.getAttribute("href"),
        text: (el.innerText || el.value || el.textContent || "").trim().slice(0, 100),
        rect: { x: box.x, y: box.y, width: box.width, height: box.height }
      });
    } catch (e) {}
  }
  const headings = [];
  for (const el of document.querySelectorAll("h1,h2,h3,h4,h5,h6")) {
    try {
      if (!visible(el)) continue;
      headings.push({
        level: Number(el.tagName.charAt(1)),
        tag: el.tagName.toLowerCase(),
        id: el.id || null,
        text: (el.innerText || el.textContent || "").trim()
      });
    } catch (e) {}
  }
  return {
    viewport: { width: window.innerWidth || 800, height: window.innerHeight || 600 },
    elements,
    headings
  };
}
"""

TEXT_CONTENT_SCRIPT = """
() => {
  const parts = [];
  const skipped = new Set(["SCRIPT", "STYLE", "NOSCRIPT"]);
  const walk = (node) => {
    if (node.nodeType === Node.TEXT_NODE) {
      const text = node.textContent.trim();
      if (text) parts.push(text);
      return;
    }
    if (node.nodeType !== Node.ELEMENT_NODE || skipped.has(node.tagName)) return;
    const style = window.getComputedStyle(node);
    if (style.display === "none" || style.visibility === "hidden") return;
    if (node.tagName === "INPUT" && node.type !== "hidden") {
      if (node.value) parts.push(node.value);
      else if (node.placeholder) parts.push(node.placeholder);
    }
    if (node.tagName === "IMG" && node.alt) parts.push(node.alt);
    for (const child of node.childNodes) walk(child);
  };
  if (document.body) walk(document.body);
  return parts.join(" ").replace(/\\s+/g, " ").trim();
}
"""

# Resolves one strategy and tags the winner with the marker attribute.
LOCATE_ELEMENT_SCRIPT = """
(request) => {
  const marker = request.marker;
  for (const stale of document.querySelectorAll("[" + marker + "]")) {
    stale.removeAttribute(marker);
  }
  let target = null;
  if (request.strategy === "selector") {
    try {
      target = document.querySelector(request.query);
    } catch (e) {
      target = null;
    }
  } else if (request.strategy === "xpath") {
    try {
      const result = document.evaluate(
        request.query, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null
      );
      target = result.singleNodeValue;
    } catch (e) {
      target = null;
    }
    if (target && target.nodeType !== Node.ELEMENT_NODE) target = target.parentElement;
  } else if (request.strategy === "fuzzy") {
    const needle = String(request.query || "").trim().toLowerCase();
    const labelText = (el) =>
      el.labels ? Array.from(el.labels).map((l) => l.innerText || l.textContent || "").join(" ") : "";
    if (needle) {
      for (const el of document.querySelectorAll(request.candidates)) {
        const haystacks = [
          el.getAttribute("aria-label"),
          labelText(el),
          el.getAttribute("placeholder"),
          el.getAttribute("name"),
          el.getAttribute("title"),
          el.innerText,
          el.textContent,
          el.value
        ];
        if (haystacks.some((v) => typeof v === "string" && v.toLowerCase().includes(needle))) {
          target = el;
          break;
        }
      }
    }
  } else if (request.strategy === "document") {
    target = document.scrollingElement || document.documentElement;
  }
  if (!target) return { found: false };
  target.setAttribute(marker, request.token);
  return {
    found: true,
    tag: target.tagName.toLowerCase(),
    id: target.id || null,
    text: String(target.innerText || target.value || "").trim().slice(0, 100)
  };
}
"""

PERFORM_ACTION_SCRIPT = """
(request) => {
  const target = document.querySelector("[" + request.marker + "=\\"" + request.token + "\\"]");
  if (!target) return { success: false, error: "Target element disappeared before the action ran" };
  try {
    if (request.op === "click") {
      if (typeof target.scrollIntoView === "function") target.scrollIntoView({ block: "center" });
      target.click();
    } else if (request.op === "type") {
      target.focus();
      if (target.isContentEditable) target.textContent = request.value;
      else target.value = request.value;
      target.dispatchEvent(new Event("input", { bubbles: true }));
      target.dispatchEvent(new Event("change", { bubbles: true }));
    } else if (request.op === "scroll") {
      target.scrollBy(0, request.delta);
    } else {
      return { success: false, error: "Unsupported operation: " + request.op };
    }
    return { success: true };
  } catch (e) {
    return { success: false, error: String((e && e.message) || e) };
  } finally {
    target.removeAttribute(request.marker);
  }
}
"""

HISTORY_STATE_SCRIPT = """
() => ({ length: window.history.length })
"""
