"""Page fetch + rule-driven item extraction.

Policy:
- A page that cannot be fetched or parsed fails the whole cycle (FetchError).
- Anything that goes wrong for a single item node stays with that node.
- Empty fields are a rule-health signal, never a reason to drop an item.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import requests
from lxml import etree
from lxml import html as lxml_html
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from newsharvest.ingestion.item_types import NewsItem
from newsharvest.ingestion.rules import ExtractionRule, ExtractMode, SourceRule
from newsharvest.ingestion.url_utils import NormalizationError, to_absolute_url

logger = logging.getLogger(__name__)

USER_AGENT = "newsharvest/1.0"


class FetchError(Exception):
    """Network, HTTP or HTML parse failure for one rule's page."""


@dataclass(frozen=True)
class ExtractionFieldEmpty:
    field: str
    rule: ExtractionRule

    def describe(self) -> str:
        return (
            f"The rule {json.dumps(self.rule.to_dict())} for {self.field} "
            "might be not working because returns empty result"
        )


@dataclass
class ExtractionResult:
    items: List[NewsItem] = field(default_factory=list)
    errors: List[NormalizationError] = field(default_factory=list)
    empty_fields: List[ExtractionFieldEmpty] = field(default_factory=list)


class PageFetcher:
    """Downloads a page and parses it into an lxml document."""

    def __init__(
        self,
        *,
        timeout: float = 30,
        connect_timeout: float = 5,
        max_bytes: int = 5_000_000,
        attempts: int = 3,
        backoff_seconds: float = 1.0,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.max_bytes = max_bytes
        self.attempts = max(1, int(attempts))
        self.backoff_seconds = backoff_seconds
        self.session = session

    def _download(self, url: str) -> requests.Response:
        # requests.get uses a fresh session per call; shared by all updater threads
        getter = self.session.get if self.session is not None else requests.get
        for attempt in Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=30),
            retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
            reraise=True,
        ):
            with attempt:
                return getter(
                    url,
                    headers={"User-Agent": USER_AGENT},
                    timeout=(self.connect_timeout, self.timeout),
                    allow_redirects=True,
                    stream=True,
                )

    def fetch(self, url: str):
        try:
            resp = self._download(url)
        except requests.RequestException as e:
            raise FetchError(f"failed to fetch {url}: {e}") from e

        try:
            if resp.status_code >= 400:
                raise FetchError(f"failed to fetch {url}: http_{resp.status_code}")
            content = bytearray()
            for chunk in resp.iter_content(chunk_size=64 * 1024):
                if not chunk:
                    continue
                content.extend(chunk)
                if len(content) > self.max_bytes:
                    raise FetchError(f"failed to fetch {url}: response larger than {self.max_bytes} bytes")
        except requests.RequestException as e:
            raise FetchError(f"failed to read {url}: {e}") from e
        finally:
            resp.close()

        if not content.strip():
            raise FetchError(f"failed to parse {url}: empty document")
        # Without a declared charset, let lxml honour <meta charset> in the bytes
        content_type = (resp.headers.get("Content-Type") or "").lower()
        try:
            parser = None
            if "charset=" in content_type and resp.encoding:
                parser = lxml_html.HTMLParser(encoding=resp.encoding)
            return lxml_html.document_fromstring(bytes(content), parser=parser, base_url=url)
        except (etree.ParserError, ValueError, LookupError) as e:
            raise FetchError(f"failed to parse {url}: {e}") from e


def _xpath(node: Any, expr: str) -> list:
    try:
        result = node.xpath(expr)
    except etree.XPathError as e:
        logger.warning(f"XPath {expr!r} failed to evaluate: {e}")
        return []
    # count(), boolean() and friends return scalars
    return result if isinstance(result, list) else [result]


def extract_value(node: Any, rule: ExtractionRule) -> str:
    """Read one string out of the first node matched by the rule's selector.

    Surrounding whitespace is stripped from the value; no match gives "".
    """
    matches = _xpath(node, rule.selector)
    if not matches:
        return ""
    first = matches[0]
    if isinstance(first, str):
        # @attr and text() selectors yield strings directly
        return str(first).strip()
    if not isinstance(first, etree._Element):
        return str(first).strip()
    if rule.mode is ExtractMode.ATTRIBUTE:
        return (first.get(rule.attribute) or "").strip()
    return (first.text_content() if hasattr(first, "text_content") else "".join(first.itertext())).strip()


def select_item_nodes(document: Any, rule: SourceRule) -> list:
    return [n for n in _xpath(document, rule.item_selector) if isinstance(n, etree._Element)]


def extract_items(rule: SourceRule, document: Any) -> ExtractionResult:
    result = ExtractionResult()
    for node in select_item_nodes(document, rule):
        raw_link = extract_value(node, rule.link_rule)
        title = extract_value(node, rule.title_rule)

        for name, value, field_rule in (("link", raw_link, rule.link_rule), ("title", title, rule.title_rule)):
            if not value:
                empty = ExtractionFieldEmpty(field=name, rule=field_rule)
                result.empty_fields.append(empty)
                logger.warning(f"{empty.describe()} (source {rule.source_url})")

        try:
            link = to_absolute_url(rule.source_url, raw_link)
        except NormalizationError as e:
            result.errors.append(e)
            logger.warning(f"Dropping item from {rule.source_url}: {e}")
            continue

        result.items.append(NewsItem(link=link, title=title))
    return result
