"""
CartoCSS to renderer-neutral style conversion.

Produces a plain JSON document listing each rule block's selectors and
declarations. Nested blocks are flattened by appending their selectors to the
enclosing block's, e.g. ``#layer { [zoom > 10] { ... } }`` becomes the
selector ``#layer[zoom > 10]``. Top-level ``@name: value;`` variables are
collected and substituted into declaration values.
"""

import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

STYLE_VERSION = 1

_COMMENT_RE = re.compile(r"/\*.*?\*/|//[^\n]*", re.DOTALL)
_VARIABLE_RE = re.compile(r"@([A-Za-z_][\w-]*)")


def convert_cartocss(cartocss: Optional[str], cartocss_version: Optional[str] = None) -> dict[str, Any]:
    """
    Convert a CartoCSS stylesheet to a style document.

    Args:
        cartocss: Stylesheet text; None or empty yields a document with no rules
        cartocss_version: Version string reported by the visualization

    Returns:
        ``{"version", "source_format", "cartocss_version", "variables", "rules"}``
    """
    variables: dict[str, str] = {}
    rules: list[dict[str, Any]] = []
    if cartocss:
        _parse_block(_strip_comments(cartocss), 0, [""], variables, rules, top_level=True)

    for rule in rules:
        rule["properties"] = {
            name: _substitute(value, variables) for name, value in rule["properties"].items()
        }

    logger.debug(f"Converted CartoCSS into {len(rules)} rule(s)")
    return {
        "version": STYLE_VERSION,
        "source_format": "cartocss",
        "cartocss_version": cartocss_version,
        "variables": variables,
        "rules": rules,
    }


def _strip_comments(text: str) -> str:
    # "//" inside url(http://...) is not a comment
    return _COMMENT_RE.sub(lambda m: m.group() if m.group().startswith("//") and _in_url(text, m.start()) else "", text)


def _in_url(text: str, pos: int) -> bool:
    opening = text.rfind("url(", 0, pos)
    return opening != -1 and text.find(")", opening) > pos


def _parse_block(text: str, pos: int, parents: list[str], variables: dict[str, str],
                 rules: list[dict[str, Any]], top_level: bool = False) -> int:
    """Parse declarations and nested blocks until the closing brace; return the position after it."""
    rule = {"selectors": [p for p in parents if p], "properties": {}}
    # Reserve the slot so a block's rule precedes its nested rules
    rules.append(rule)
    buffer: list[str] = []
    quote = None

    while pos < len(text):
        char = text[pos]
        if quote:
            buffer.append(char)
            if char == quote:
                quote = None
            pos += 1
            continue
        if char in ('"', "'"):
            quote = char
            buffer.append(char)
            pos += 1
            continue

        if char == "{":
            selectors = [s.strip() for s in "".join(buffer).split(",") if s.strip()]
            buffer = []
            nested = [parent + selector for parent in parents for selector in selectors] or parents
            pos = _parse_block(text, pos + 1, nested, variables, rules)
            continue

        if char in (";", "}"):
            _add_declaration("".join(buffer), rule, variables, top_level)
            buffer = []
            pos += 1
            if char == "}":
                if top_level:
                    logger.debug("Ignoring unmatched closing brace in CartoCSS")
                    continue
                break
            continue

        buffer.append(char)
        pos += 1

    else:
        _add_declaration("".join(buffer), rule, variables, top_level)

    if not rule["properties"]:
        del rules[next(i for i, r in enumerate(rules) if r is rule)]
    return pos


def _add_declaration(text: str, rule: dict[str, Any], variables: dict[str, str], top_level: bool) -> None:
    name, sep, value = text.partition(":")
    name, value = name.strip(), value.strip()
    if not sep or not name:
        return
    if name.startswith("@"):
        if top_level:
            variables[name[1:]] = value
        return
    rule["properties"][name] = value


def _substitute(value: str, variables: dict[str, str]) -> str:
    return _VARIABLE_RE.sub(lambda m: variables.get(m.group(1), m.group()), value)
