"""
Data models for the ECODATA chat assistant.
"""

from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Sender(Enum):
    USER = "user"
    BOT = "bot"


class ChatState(Enum):
    IDLE = "idle"
    SENDING = "sending"


# ──────────────────────────────────────
# Conversation
# ──────────────────────────────────────

@dataclass(frozen=True)
class Session:
    session_id: str
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class Turn:
    id: str
    content: str
    sender: Sender
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def is_bot(self) -> bool:
        return self.sender is Sender.BOT


@dataclass
class RateWindowEntry:
    session_id: str
    count: int
    window_start: float


# ──────────────────────────────────────
# Knowledge snapshot
# ──────────────────────────────────────

@dataclass(frozen=True)
class FAQ:
    question: str
    answer: str
    category: str = "general"


@dataclass(frozen=True)
class Service:
    title: str
    description: str
    slug: str = ""
    short_description: Optional[str] = None

    @property
    def path(self) -> str:
        """Site path of the service detail page."""
        return f"/services/{self.slug}" if self.slug else ""


@dataclass(frozen=True)
class ImpactMetric:
    title: str
    value: str
    unit: str = ""


@dataclass(frozen=True)
class Theme:
    title: str
    description: str


@dataclass(frozen=True)
class KnowledgeSnapshot:
    faqs: List[FAQ] = field(default_factory=list)
    services: List[Service] = field(default_factory=list)
    impact_metrics: List[ImpactMetric] = field(default_factory=list)
    themes: Dict[str, Theme] = field(default_factory=dict)

    def counts(self) -> Dict[str, int]:
        return {
            "faqs": len(self.faqs),
            "services": len(self.services),
            "impact_metrics": len(self.impact_metrics),
            "themes": len(self.themes),
        }
