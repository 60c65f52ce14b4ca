"""
Knowledge Loader — supplies the content corpus the assistant quotes from.

The site's content (FAQs, services, impact metrics, SDG themes) is owned by
the host application. This loader reads an exported JSON copy of it and
builds a fresh, immutable KnowledgeSnapshot on every call.
"""

import json
from typing import Any, Dict, List

from app_config import KNOWLEDGE_PATH
from chat_logger import get_logger
from models import FAQ, ImpactMetric, KnowledgeSnapshot, Service, Theme

logger = get_logger()


class KnowledgeLoader:
    """Reads the knowledge corpus from a JSON file."""

    def __init__(self, path: str = KNOWLEDGE_PATH):
        self.path = path

    def load_snapshot(self) -> KnowledgeSnapshot:
        """
        Read the corpus and return a new snapshot.

        Raises:
            OSError: the file cannot be read
            ValueError: the file is not valid JSON or has the wrong shape
        """
        with open(self.path, encoding="utf-8") as fh:
            raw = json.load(fh)

        if not isinstance(raw, dict):
            raise ValueError(f"Knowledge file {self.path} must contain a JSON object")

        snapshot = snapshot_from_dict(raw)
        logger.debug(f"Knowledge snapshot loaded | path={self.path} | counts={snapshot.counts()}")
        return snapshot


def _records(raw: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    items = raw.get(key, [])
    if not isinstance(items, list):
        raise ValueError(f"'{key}' must be a list")
    return [item for item in items if isinstance(item, dict)]


def snapshot_from_dict(raw: Dict[str, Any]) -> KnowledgeSnapshot:
    """Build a KnowledgeSnapshot from the exported JSON structure."""
    faqs = [
        FAQ(
            question=item["question"],
            answer=item["answer"],
            category=item.get("category", "general"),
        )
        for item in _records(raw, "faqs")
        if item.get("question") and item.get("answer")
    ]

    services = [
        Service(
            title=item["title"],
            description=item.get("description", ""),
            slug=item.get("slug", ""),
            short_description=item.get("shortDescription") or item.get("short_description"),
        )
        for item in _records(raw, "services")
        if item.get("title")
    ]

    metrics = [
        ImpactMetric(
            title=item["title"],
            value=str(item.get("value", "")),
            unit=item.get("unit", ""),
        )
        for item in _records(raw, "impactMetrics") + _records(raw, "impact_metrics")
        if item.get("title")
    ]

    raw_themes = raw.get("themes", {})
    if not isinstance(raw_themes, dict):
        raise ValueError("'themes' must be an object keyed by theme id")
    themes = {
        str(theme_id): Theme(title=item["title"], description=item.get("description", ""))
        for theme_id, item in raw_themes.items()
        if isinstance(item, dict) and item.get("title")
    }

    return KnowledgeSnapshot(
        faqs=faqs,
        services=services,
        impact_metrics=metrics,
        themes=themes,
    )
