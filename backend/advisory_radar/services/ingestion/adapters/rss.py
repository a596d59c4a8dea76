# backend/advisory_radar/services/ingestion/adapters/rss.py
"""RSS / Atom feed adapter."""

import html
import logging
import re
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import feedparser
from dateutil import parser as date_parser
from pydantic import BaseModel, Field

from advisory_radar.core.time_utils import to_naive_utc, utcnow
from advisory_radar.schemas.alerts import AlertType, CandidateAlert, SourceCategory
from advisory_radar.schemas.sources import AdapterResult, RawCacheItem
from advisory_radar.services.ingestion import extractors
from advisory_radar.services.ingestion.adapters.base import (
    ClientFactory,
    default_client_factory,
    http_get,
)

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_SPAM_TITLE_RE = re.compile(r"\b(sponsored|webinar|deal|giveaway|save \d+%)\b", re.IGNORECASE)

MAX_DESCRIPTION_CHARS = 50_000


class RssFeedConfig(BaseModel):
    source_id: str
    source_name: str
    category: SourceCategory
    trust_tier: int = 2
    url: str
    language: str = "en"
    default_alert_type: Optional[AlertType] = None
    default_alert_sub_type: Optional[str] = None
    days_back: int = 14
    include_title_keywords: List[str] = Field(default_factory=list)
    include_link_substrings: List[str] = Field(default_factory=list)
    exclude_link_substrings: List[str] = Field(default_factory=list)


def _strip_html(text: str) -> str:
    return re.sub(r"\s+", " ", html.unescape(_TAG_RE.sub(" ", text or ""))).strip()


def _entry_date(entry) -> Optional[datetime]:
    for field in ("published", "updated", "pubDate"):
        value = entry.get(field)
        if not value:
            continue
        try:
            return to_naive_utc(date_parser.parse(value))
        except (ValueError, TypeError, OverflowError):
            logger.warning("Failed to parse feed date %r", value)
    return None


def _entry_text(entry) -> str:
    text = entry.get("summary") or entry.get("description") or ""
    if not text and entry.get("content"):
        text = entry["content"][0].get("value", "")
    return _strip_html(text)


class RssAdapter:
    def __init__(
        self,
        config: RssFeedConfig,
        *,
        user_agent: str = "advisory-radar/0.1",
        client_factory: ClientFactory = default_client_factory,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.user_agent = user_agent
        self._client_factory = client_factory
        self._now = now

    async def fetch(self) -> AdapterResult:
        async with self._client_factory() as client:
            resp = await http_get(client, self.config.url, headers={"User-Agent": self.user_agent})
        return AdapterResult(
            alerts=self.parse(resp.text),
            raw_cache=[
                RawCacheItem(
                    label="feed",
                    url=self.config.url,
                    content_type="application/xml",
                    extension="xml",
                    body=resp.text,
                )
            ],
        )

    def parse(self, xml_text: str) -> List[CandidateAlert]:
        cfg = self.config
        feed = feedparser.parse(xml_text)
        if feed.bozo and not feed.entries:
            logger.warning("RSS feed %s unparseable: %s", cfg.source_id, feed.get("bozo_exception"))
            return []

        cutoff = self._now() - timedelta(days=cfg.days_back)
        out: List[CandidateAlert] = []

        for entry in feed.entries:
            published = _entry_date(entry) or self._now()
            if published < cutoff:
                continue

            title = (entry.get("title") or "Untitled").strip()
            if cfg.category == SourceCategory.NEWS and _SPAM_TITLE_RE.search(title):
                continue
            if cfg.include_title_keywords:
                lower_title = title.lower()
                if not any(k.lower() in lower_title for k in cfg.include_title_keywords):
                    continue

            link = entry.get("link") or entry.get("id") or cfg.url
            if cfg.include_link_substrings and not any(s in link for s in cfg.include_link_substrings):
                continue
            if cfg.exclude_link_substrings and any(s in link for s in cfg.exclude_link_substrings):
                continue

            description = _entry_text(entry)[:MAX_DESCRIPTION_CHARS]
            full_text = f"{title} {description}"

            alert_type = cfg.default_alert_type or AlertType(extractors.classify_alert_type(full_text))
            out.append(
                CandidateAlert(
                    source_id=cfg.source_id,
                    source_name=cfg.source_name,
                    source_category=cfg.category,
                    source_trust_tier=cfg.trust_tier,
                    source_url=link,
                    source_language=cfg.language,
                    published_at=published,
                    title=title,
                    description=description,
                    alert_type=alert_type,
                    alert_sub_type=cfg.default_alert_sub_type,
                    severity=extractors.severity_from_text(full_text),
                    is_actively_exploited=extractors.is_actively_exploited(full_text),
                    is_zero_day=extractors.is_zero_day(full_text),
                    cve_ids=extractors.extract_cve_ids(full_text),
                    affected_vendors=extractors.extract_vendors(full_text),
                    raw_content_type="rss-xml",
                )
            )

        logger.info("Parsed %d recent items from %s", len(out), cfg.source_id)
        return out
