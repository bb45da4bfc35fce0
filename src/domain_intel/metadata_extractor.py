"""
Metadata Extractor for the domain intelligence system.

Turns the raw markup of a landing page into a MetadataResult. Extraction is
table-driven: every output field has an ordered list of sources and the
first source yielding a non-empty value wins. Structured data
(application/ld+json) is collected per block and may backfill an empty
title or description.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Sequence
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .audit_logger import AuditLogger
from .enums import LogLevel
from .models import MetadataResult, utc_timestamp


# The denominator used for the completeness score.
TOTAL_FIELDS = 30


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, list):
        value = " ".join(str(v) for v in value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _rel_tokens(tag) -> set[str]:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return {token.lower() for token in rel}


def _meta_content(soup: BeautifulSoup, attribute: str, value: str) -> list[str]:
    wanted = value.lower()
    found = []
    for tag in soup.find_all("meta"):
        if (tag.get(attribute) or "").strip().lower() == wanted:
            content = _clean(tag.get("content"))
            if content:
                found.append(content)
    return found


class MetaProperty:
    """`<meta property="..." content="...">`"""

    def __init__(self, name: str) -> None:
        self.name = name

    def find(self, soup: BeautifulSoup) -> Optional[str]:
        values = _meta_content(soup, "property", self.name)
        return values[0] if values else None


class MetaPropertyList(MetaProperty):
    """Every matching meta property, comma-joined."""

    def find(self, soup: BeautifulSoup) -> Optional[str]:
        values = _meta_content(soup, "property", self.name)
        return ", ".join(values) if values else None


class MetaName:
    """`<meta name="..." content="...">`"""

    def __init__(self, name: str) -> None:
        self.name = name

    def find(self, soup: BeautifulSoup) -> Optional[str]:
        values = _meta_content(soup, "name", self.name)
        return values[0] if values else None


class TitleTag:
    def find(self, soup: BeautifulSoup) -> Optional[str]:
        tag = soup.find("title")
        return _clean(tag.get_text()) if tag else None


class HtmlLang:
    def find(self, soup: BeautifulSoup) -> Optional[str]:
        tag = soup.find("html")
        return _clean(tag.get("lang")) if tag else None


class LinkRel:
    """First `<link>` whose rel is exactly one of the given values."""

    def __init__(self, *rels: str) -> None:
        self.rels = [frozenset(rel.lower().split()) for rel in rels]

    def find(self, soup: BeautifulSoup) -> Optional[str]:
        for tag in soup.find_all("link"):
            if _rel_tokens(tag) in self.rels:
                href = _clean(tag.get("href"))
                if href:
                    return href
        return None


class LinkType:
    """First `<link>` with the given MIME type."""

    def __init__(self, mime_type: str) -> None:
        self.mime_type = mime_type

    def find(self, soup: BeautifulSoup) -> Optional[str]:
        for tag in soup.find_all("link"):
            if (tag.get("type") or "").strip().lower() == self.mime_type:
                href = _clean(tag.get("href"))
                if href:
                    return href
        return None


class Charset:
    """`<meta charset>`, falling back to the http-equiv content type."""

    def find(self, soup: BeautifulSoup) -> Optional[str]:
        for tag in soup.find_all("meta"):
            charset = _clean(tag.get("charset"))
            if charset:
                return charset
            content = tag.get("content") or ""
            if (tag.get("http-equiv") or "").lower() == "content-type" and "charset=" in content.lower():
                return _clean(content.lower().split("charset=", 1)[1].split(";")[0])
        return None


@dataclass(frozen=True)
class FieldRule:
    """Ordered sources for one MetadataResult field."""

    name: str
    sources: tuple
    resolve_url: bool = False


FIELD_RULES: tuple[FieldRule, ...] = (
    FieldRule("title", (MetaProperty("og:title"), MetaName("twitter:title"), TitleTag())),
    FieldRule("description", (
        MetaProperty("og:description"),
        MetaName("twitter:description"),
        MetaName("description"),
    )),
    FieldRule("keywords", (MetaName("keywords"),)),
    FieldRule("author", (MetaProperty("article:author"), MetaName("author"))),
    FieldRule("lang", (HtmlLang(), MetaProperty("og:locale"))),
    FieldRule("publisher", (MetaProperty("og:site_name"),)),
    FieldRule("type", (MetaProperty("og:type"),)),
    FieldRule("image", (MetaProperty("og:image"), MetaName("twitter:image"))),
    FieldRule("image_alt", (MetaProperty("og:image:alt"),)),
    FieldRule("url", (MetaProperty("og:url"), LinkRel("canonical"))),
    FieldRule("twitter_card", (MetaName("twitter:card"),)),
    FieldRule("twitter_site", (MetaName("twitter:site"),)),
    FieldRule("twitter_creator", (MetaName("twitter:creator"),)),
    FieldRule("date", (MetaProperty("article:published_time"), MetaName("date"))),
    FieldRule("modified_date", (MetaProperty("article:modified_time"),)),
    FieldRule("category", (MetaProperty("article:section"),)),
    FieldRule("tags", (MetaPropertyList("article:tag"),)),
    FieldRule("favicon", (LinkRel("icon", "shortcut icon"),), resolve_url=True),
    FieldRule("logo", (LinkRel("apple-touch-icon"),), resolve_url=True),
    FieldRule("robots", (MetaName("robots"),)),
    FieldRule("viewport", (MetaName("viewport"),)),
    FieldRule("theme_color", (MetaName("theme-color"),)),
    FieldRule("charset", (Charset(),)),
    FieldRule("generator", (MetaName("generator"),)),
    FieldRule("rss_feed", (LinkType("application/rss+xml"),), resolve_url=True),
    FieldRule("atom_feed", (LinkType("application/atom+xml"),), resolve_url=True),
)


def site_root(domain: str) -> str:
    return f"https://{domain.strip()}/"


def extract_field(soup: BeautifulSoup, rule: FieldRule, base_url: str) -> Optional[str]:
    """Apply one rule: first non-empty source wins, optionally made absolute."""
    for source in rule.sources:
        value = source.find(soup)
        if value:
            return urljoin(base_url, value) if rule.resolve_url else value
    return None


def parse_structured_data(soup: BeautifulSoup) -> list[Any]:
    """Parse every ld+json block on its own; malformed blocks are skipped."""
    blocks = []
    for script in soup.find_all("script", attrs={"type": True}):
        if script["type"].strip().lower() != "application/ld+json":
            continue
        try:
            data = json.loads(script.string or script.get_text() or "")
        except (ValueError, RecursionError):
            continue
        if data:
            blocks.append(data)
    return blocks


def _first_schema(blocks: Sequence[Any]) -> Optional[dict]:
    if not blocks:
        return None
    first = blocks[0]
    if isinstance(first, list):
        first = first[0] if first else None
    return first if isinstance(first, dict) else None


def completeness_score(values: dict[str, Any]) -> int:
    filled = sum(1 for value in values.values() if value)
    return round(filled / TOTAL_FIELDS * 100)


def extract(
    html: str,
    domain: str,
    result_id: int,
    timestamp: Optional[str] = None,
) -> MetadataResult:
    """
    Extract page metadata from raw markup.

    Args:
        html: Raw page markup
        domain: Domain the page was fetched for
        result_id: Id of the emitted record
        timestamp: Optional creation timestamp (now if omitted)

    Returns:
        MetadataResult with every field that could be found
    """
    soup = BeautifulSoup(html or "", "html.parser")
    base_url = site_root(domain)

    values: dict[str, Any] = {
        rule.name: extract_field(soup, rule, base_url) for rule in FIELD_RULES
    }
    if not values["url"]:
        values["url"] = f"https://{domain.strip()}"

    blocks = parse_structured_data(soup)
    schema = _first_schema(blocks)
    if schema:
        schema_type = schema.get("@type")
        values["schema_type"] = _clean(schema_type) if schema_type else None
        if not values["title"]:
            values["title"] = _clean(schema.get("name"))
        if not values["description"]:
            values["description"] = _clean(schema.get("description"))
    else:
        values["schema_type"] = None

    return MetadataResult(
        id=result_id,
        domain=domain.strip(),
        timestamp=timestamp or utc_timestamp(),
        json_ld=tuple(blocks),
        completeness_score=completeness_score(values),
        **values,
    )


class MetadataExtractor:
    """Stateful wrapper that logs each extraction."""

    COMPONENT = "MetadataExtractor"

    def __init__(self, logger: Optional[AuditLogger] = None) -> None:
        self._logger = logger

    def extract(
        self,
        html: str,
        domain: str,
        result_id: int,
        timestamp: Optional[str] = None,
    ) -> MetadataResult:
        result = extract(html, domain, result_id, timestamp)
        if self._logger:
            self._logger.log(LogLevel.DEBUG, self.COMPONENT, "Metadata extracted", {
                "domain": result.domain,
                "completeness_score": result.completeness_score,
                "structured_blocks": len(result.json_ld),
            })
        return result
