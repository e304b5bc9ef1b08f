"""Extraction rule catalog.

Rules are operator-authored JSON loaded once at startup:

    [
      {
        "intervalMinutes": 30,
        "url": "https://example.com/news/",
        "newsNodesExpr": "//div[@class='item']",
        "linkRule": {"expr": ".//a", "attr": "href"},
        "titleRule": {"expr": ".//a"}
      }
    ]

A single malformed entry invalidates the whole file.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from lxml import etree

from newsharvest.ingestion.url_utils import is_http_url


class ConfigError(ValueError):
    """Rule source (or environment config) is unreadable or malformed."""


class ExtractMode(str, Enum):
    ATTRIBUTE = "attribute"
    TEXT = "text"


@dataclass(frozen=True)
class ExtractionRule:
    """XPath selector plus what to read from the first matching node."""

    selector: str
    mode: ExtractMode = ExtractMode.TEXT
    attribute: Optional[str] = None

    def __post_init__(self):
        if not self.selector:
            raise ConfigError("extraction rule selector must not be empty")
        if self.mode is ExtractMode.ATTRIBUTE and not self.attribute:
            raise ConfigError("attribute extraction requires an attribute name")
        if self.mode is ExtractMode.TEXT and self.attribute is not None:
            raise ConfigError("text extraction does not take an attribute name")

    @classmethod
    def text(cls, selector: str) -> "ExtractionRule":
        return cls(selector=selector, mode=ExtractMode.TEXT)

    @classmethod
    def attr(cls, selector: str, attribute: str) -> "ExtractionRule":
        return cls(selector=selector, mode=ExtractMode.ATTRIBUTE, attribute=attribute)

    def to_dict(self) -> Dict[str, str]:
        d = {"expr": self.selector}
        if self.mode is ExtractMode.ATTRIBUTE:
            d["attr"] = self.attribute
        return d


@dataclass(frozen=True)
class SourceRule:
    interval_minutes: int
    source_url: str
    item_selector: str
    link_rule: ExtractionRule
    title_rule: ExtractionRule

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intervalMinutes": self.interval_minutes,
            "url": self.source_url,
            "newsNodesExpr": self.item_selector,
            "linkRule": self.link_rule.to_dict(),
            "titleRule": self.title_rule.to_dict(),
        }


def _check_xpath(expr: Any, where: str) -> str:
    if not isinstance(expr, str) or not expr.strip():
        raise ConfigError(f"{where}: expected a non-empty XPath string")
    try:
        etree.XPath(expr)
    except etree.XPathError as e:
        raise ConfigError(f"{where}: invalid XPath {expr!r}: {e}") from e
    return expr


def _parse_extraction_rule(raw: Any, where: str) -> ExtractionRule:
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: expected an object with 'expr' and optional 'attr'")
    expr = _check_xpath(raw.get("expr"), f"{where}.expr")
    attr = raw.get("attr")
    if attr is None or attr == "":
        return ExtractionRule.text(expr)
    if not isinstance(attr, str):
        raise ConfigError(f"{where}.attr: expected a string")
    return ExtractionRule.attr(expr, attr)


def _parse_source_rule(raw: Any, index: int) -> SourceRule:
    where = f"rule[{index}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: expected an object")

    for key in ("intervalMinutes", "url", "newsNodesExpr", "linkRule", "titleRule"):
        if key not in raw:
            raise ConfigError(f"{where}: missing required field '{key}'")

    interval = raw["intervalMinutes"]
    # bool is an int subclass; "true" is not an interval
    if isinstance(interval, bool) or not isinstance(interval, int):
        raise ConfigError(f"{where}.intervalMinutes: expected a positive integer")
    if interval <= 0:
        raise ConfigError(f"{where}.intervalMinutes: must be greater than zero")

    url = raw["url"]
    if not isinstance(url, str) or not is_http_url(url):
        raise ConfigError(f"{where}.url: expected an absolute http(s) URL, got {url!r}")

    return SourceRule(
        interval_minutes=interval,
        source_url=url,
        item_selector=_check_xpath(raw["newsNodesExpr"], f"{where}.newsNodesExpr"),
        link_rule=_parse_extraction_rule(raw["linkRule"], f"{where}.linkRule"),
        title_rule=_parse_extraction_rule(raw["titleRule"], f"{where}.titleRule"),
    )


def parse_rules(data: Any) -> List[SourceRule]:
    """Validate already-decoded JSON into SourceRules (order preserved)."""
    if not isinstance(data, list):
        raise ConfigError("error while reading parsing rules: expected a JSON array")
    if not data:
        raise ConfigError("error while reading parsing rules: no rules configured")
    return [_parse_source_rule(raw, i) for i, raw in enumerate(data)]


def load_rules(path: Union[str, Path]) -> List[SourceRule]:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"cannot read parsing rules from {path}: {e}") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"error while reading parsing rules: {e}") from e
    return parse_rules(data)
