"""JavaScript snippets run through ``page.evaluate``.

The collectors only report facts about elements (geometry, computed style,
text, context). Thresholds and keyword matching happen in
``portal_pilot.browser.heuristics``. Collected elements are stamped with a
``data-pp-ref`` attribute so ``ACT_ON_ELEMENT`` can click or remove exactly
the node a decision picked.
"""

_COLLECT_FN = r"""
function __ppCollect(opts) {
  const selectors = opts.selectors || [];
  const seen = new Set();
  const elements = [];
  const viewport = { width: window.innerWidth, height: window.innerHeight };
  const isVisible = (el) => {
    const s = getComputedStyle(el);
    if (s.display === "none" || s.visibility === "hidden") return false;
    if (!el.offsetWidth && !el.offsetHeight) return false;
    return el.offsetParent !== null || s.position === "fixed";
  };
  const stamp = (el) => {
    if (!opts.mark) return null;
    window.__ppRefSeq = (window.__ppRefSeq || 0) + 1;
    const ref = String(window.__ppRefSeq);
    el.setAttribute("data-pp-ref", ref);
    return ref;
  };
  const textOf = (el) => (el.textContent || "").trim();
  for (const selector of selectors) {
    let nodes;
    try {
      nodes = document.querySelectorAll(selector);
    } catch (e) {
      continue;
    }
    for (const el of nodes) {
      if (seen.has(el)) continue;
      seen.add(el);
      const s = getComputedStyle(el);
      if (opts.positionedOnly && s.position !== "fixed" && s.position !== "absolute") continue;
      const visible = isVisible(el);
      if (opts.visibleOnly && !visible) continue;
      const text = textOf(el);
      if (opts.maxTextLength && (text.length === 0 || text.length > opts.maxTextLength)) continue;
      if (opts.exactText && !opts.exactText.includes(text)) continue;
      const rect = el.getBoundingClientRect();
      const facts = {
        ref: stamp(el),
        selector,
        tag: el.tagName.toLowerCase(),
        text: text.slice(0, 200),
        class_name: typeof el.className === "string" ? el.className.slice(0, 120) : "",
        visible,
        position: s.position,
        z_index: s.zIndex,
        width: el.offsetWidth || 0,
        height: el.offsetHeight || 0,
        rect_width: rect.width,
        rect_height: rect.height,
        inside_popup: opts.popupContainer ? !!el.closest(opts.popupContainer) : false,
        has_form: !!el.querySelector("input, select, textarea"),
        has_close_affordance: opts.closeAffordance ? !!el.querySelector(opts.closeAffordance) : false,
        children: [],
      };
      if (opts.childSelector) {
        for (const child of el.querySelectorAll(opts.childSelector)) {
          if (!isVisible(child)) continue;
          facts.children.push({ ref: stamp(child), text: textOf(child).slice(0, 200), visible: true });
        }
      }
      elements.push(facts);
      if (opts.limit && elements.length >= opts.limit) return { viewport, elements };
    }
  }
  return { viewport, elements };
}
"""

COLLECT_ELEMENTS = "(opts) => {" + _COLLECT_FN + "\n  return __ppCollect(opts);\n}"

PAGE_SNAPSHOT = (
    "(opts) => {"
    + _COLLECT_FN
    + r"""
  const text = document.body ? (document.body.innerText || "") : "";
  const inputs = [];
  for (const i of document.querySelectorAll("input:not([type=hidden])")) {
    if (i.offsetParent === null) continue;
    const type = (i.type || "text").toLowerCase();
    inputs.push({
      type,
      name: i.name || "",
      placeholder: i.placeholder || "",
      id: i.id || "",
      filled: ["email", "text", "password"].includes(type) && !!i.value,
    });
  }
  const buttonLabels = [];
  for (const b of document.querySelectorAll("button, input[type=submit], a[role=button]")) {
    if (b.offsetParent === null) continue;
    buttonLabels.push((b.textContent || "").trim());
    if (buttonLabels.length >= opts.maxButtons) break;
  }
  return {
    url: window.location.href,
    text,
    viewport: { width: window.innerWidth, height: window.innerHeight },
    inputs,
    button_labels: buttonLabels,
    dialogs: __ppCollect(opts.dialogs).elements,
    overlays: __ppCollect(opts.overlays).elements,
    modals: __ppCollect(opts.modals).elements,
  };
}"""
)

ACT_ON_ELEMENT = r"""({ ref, action }) => {
  const el = document.querySelector(`[data-pp-ref="${ref}"]`);
  if (!el) return false;
  if (action === "remove") {
    el.remove();
  } else {
    el.click();
  }
  return true;
}"""

REMOVE_ELEMENTS = r"""(refs) => {
  let removed = 0;
  for (const ref of refs) {
    const el = document.querySelector(`[data-pp-ref="${ref}"]`);
    if (el) {
      el.remove();
      removed++;
    }
  }
  return removed;
}"""

BODY_TEXT = '() => document.body ? (document.body.innerText || "") : ""'

SCROLL_BY_VIEWPORT = "(fraction) => window.scrollBy(0, window.innerHeight * fraction)"

SCROLL_TO_TOP = "() => window.scrollTo(0, 0)"

RELEASE_SCROLL_LOCK = r"""() => {
  let released = false;
  for (const el of [document.body, document.documentElement]) {
    if (el && el.style.overflow === "hidden") {
      el.style.overflow = "";
      released = true;
    }
  }
  return released;
}"""
