"""In-page DOM helper installed as ``window._tabwright``.

Every operation takes an encoded selector as its first argument: ``"s"``
followed by a CSS selector or ``"x"`` followed by an XPath expression (an
Element is also accepted when operations call each other). Every operation
returns an envelope ``{success, error, result}``.
"""

from __future__ import annotations

HELPER_VERSION = "1"

HELPER_JS = r"""
(() => {
  if (window._tabwright && window._tabwright.version === "%(version)s") return true;

  const ok = (value, guard) =>
    value === undefined || value === null ? { success: true } : { success: !!value, guard: guard };
  const fail = (error) => ({ success: false, error: error });
  const wrap = (result) => ({ success: true, result: result });

  const describe = (s) => (typeof s === "string" ? ": " + s.slice(1) : "");

  const resolveOne = (s) => {
    if (typeof s !== "string") return s;
    if (s.charAt(0) === "x") {
      return document.evaluate(s.slice(1), document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null)
        .singleNodeValue;
    }
    return document.querySelector(s.slice(1));
  };

  const resolveAll = (s) => {
    if (typeof s !== "string") return Array.isArray(s) ? s : [s];
    if (s.charAt(0) === "x") {
      const it = document.evaluate(s.slice(1), document, null, XPathResult.ORDERED_NODE_ITERATOR_TYPE, null);
      const nodes = [];
      for (let n = it.iterateNext(); n; n = it.iterateNext()) nodes.push(n);
      return nodes;
    }
    return Array.from(document.querySelectorAll(s.slice(1)));
  };

  // one(guard..., op): resolve a single element, run guards, then op.
  const one = (...chain) => (s, ...args) => {
    const n = resolveOne(s);
    if (!n) return fail("could not find DOM element matching selector" + describe(s));
    for (const guard of chain.slice(0, -1)) {
      const r = guard(n, ...args);
      if (!r.success) return r.error ? r : fail(r.guard + describe(s));
    }
    const r = chain[chain.length - 1](n, ...args);
    if (r.error) r.error = r.error + describe(s);
    return r;
  };

  const each = (op) => (s, ...args) => {
    const r = op(resolveAll(s), ...args);
    if (r.error) r.error = r.error + describe(s);
    return r;
  };

  const lookup = (n, path) => {
    let v = n;
    for (const part of path.split(".")) {
      if (v === null || v === undefined || !(part in Object(v))) return { found: false };
      v = v[part];
    }
    return { found: true, value: v };
  };

  const plain = (v) => {
    if (v instanceof DOMStringMap) return Object.assign({}, v);
    if (v !== null && typeof v === "object" && !Array.isArray(v) && typeof v[Symbol.iterator] === "function") {
      return Array.from(v);
    }
    return v;
  };

  const fire = (n) => {
    n.dispatchEvent(new Event("input", { bubbles: true }));
    n.dispatchEvent(new Event("change", { bubbles: true }));
  };

  const h = {};
  h.version = "%(version)s";

  h.exists = (s) => ok(!!resolveOne(s));
  h.count = each((ns) => wrap(ns.length));
  h.isVisible = one((n) => ok(n.offsetWidth > 0 || n.offsetHeight > 0 || n.offsetParent !== null, "DOM element is not visible"));
  h.isEnabled = one((n) => ok(!n.disabled, "DOM element is not enabled"));
  h.click = one(h.isVisible, h.isEnabled, (n) => {
    n.click();
    return ok();
  });
  h.clickEach = each((ns) => {
    for (const n of ns) {
      const r = h.click(n);
      if (!r.success) return r.error ? r : fail(r.guard);
    }
    return ok();
  });
  h.getInnerText = one((n) => wrap(n.innerText));
  h.getClassList = one((n) => wrap(Array.from(n.classList)));

  h.getValue = one((n) => {
    if (n.type === "checkbox") return wrap(n.checked);
    if (n.type === "radio") {
      const picked = Array.from(document.querySelectorAll('input[type="radio"]'))
        .find((o) => o.name === n.name && o.checked);
      return wrap(picked ? picked.value : null);
    }
    if (n.type === "select-multiple") return wrap(Array.from(n.selectedOptions).map((o) => o.value));
    return wrap(n.value);
  });

  h.setValue = one(h.isVisible, h.isEnabled, (n, v) => {
    if (n.type === "checkbox") {
      if (typeof v !== "boolean") return fail("Checkboxes only accept boolean values");
      n.focus();
      n.checked = v;
      n.blur();
    } else if (n.type === "radio") {
      if (typeof v !== "string") return fail("Radio inputs only accept string values");
      const o = Array.from(document.querySelectorAll('input[type="radio"]'))
        .find((r) => r.name === n.name && r.value === v);
      if (!o) return fail('Radio input does not have option with value "' + v + '"');
      if (!h.isVisible(o).success) return fail('The "' + v + '" option is not visible');
      if (!h.isEnabled(o).success) return fail('The "' + v + '" option is not enabled');
      o.focus();
      o.checked = true;
      o.blur();
      n = o;
    } else if (n.type === "select-one") {
      if (!Array.from(n.options).some((o) => o.value === v)) {
        return fail('Select input does not have option with value "' + v + '"');
      }
      n.value = v;
    } else if (n.type === "select-multiple") {
      if (!Array.isArray(v)) return fail("Multi-select inputs only accept list values");
      const options = Array.from(n.options);
      const picked = [];
      for (const value of v) {
        const o = options.find((opt) => opt.value === value);
        if (!o) return fail('The "' + value + '" option does not exist');
        if (o.disabled) return fail('The "' + value + '" option is not enabled');
        picked.push(o);
      }
      options.forEach((o) => (o.selected = false));
      picked.forEach((o) => (o.selected = true));
    } else {
      n.focus();
      n.value = v;
      n.blur();
    }
    fire(n);
    return ok();
  });

  h.isChecked = one((n) => {
    if (n.type !== "checkbox" && n.type !== "radio") return fail("DOM element is not a checkbox or radio input");
    return ok(n.checked, "DOM element is not checked");
  });
  h.setChecked = one(h.isVisible, h.isEnabled, (n, v) => {
    if (typeof v !== "boolean") return fail("Checkboxes only accept boolean values");
    if (n.type !== "checkbox" && n.type !== "radio") return fail("DOM element is not a checkbox or radio input");
    n.focus();
    n.checked = v;
    n.blur();
    fire(n);
    return ok();
  });

  h.hasProperty = one((n, p) => ok(lookup(n, p).found, "DOM element does not have property " + p));
  h.eachHasProperty = each((ns, p) => ok(ns.length > 0 && ns.every((n) => lookup(n, p).found), "not every DOM element has property " + p));
  h.getProperty = one((n, p) => {
    const r = lookup(n, p);
    return wrap(r.found ? plain(r.value) : null);
  });
  h.getPropertyForEach = each((ns, p) => wrap(ns.map((n) => h.getProperty(n, p).result)));
  h.getProperties = one((n, ps) => {
    const out = {};
    for (const p of ps) out[p] = h.getProperty(n, p).result;
    return wrap(out);
  });
  h.getPropertiesForEach = each((ns, ps) => wrap(ns.map((n) => h.getProperties(n, ps).result)));
  h.setProperty = one((n, p, v) => {
    const parts = p.split(".");
    let target = n;
    for (const part of parts.slice(0, -1)) {
      if (target === null || target === undefined || !(part in Object(target))) {
        return fail('could not resolve property component ".' + part + '"');
      }
      target = target[part];
    }
    target[parts[parts.length - 1]] = v;
    return ok();
  });
  h.setPropertyForEach = each((ns, p, v) => {
    for (const n of ns) {
      const r = h.setProperty(n, p, v);
      if (!r.success) return r;
    }
    return ok();
  });
  h.invokeOn = one((n, f, ...args) => {
    if (typeof n[f] !== "function") return fail('element does not implement "' + f + '"');
    return wrap(n[f](...args));
  });
  h.invokeOnEach = each((ns, f, ...args) => wrap(ns.map((n) => h.invokeOn(n, f, ...args).result)));
  h.invokeWith = one((n, script, ...args) => wrap((0, eval)(script)(n, ...args)));
  h.invokeWithEach = each((ns, script, ...args) => wrap(ns.map((n) => h.invokeWith(n, script, ...args).result)));

  window._tabwright = h;
  return true;
})()
""" % {"version": HELPER_VERSION}

__all__ = ["HELPER_JS", "HELPER_VERSION"]
