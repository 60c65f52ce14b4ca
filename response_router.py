"""
Response Router — canned shortcuts first, completion service second.

High-frequency intents (greetings, contact details, service navigation) are
answered from an ordered shortcut catalogue at zero cost. Everything else is
handed to the Completion Gateway exactly once.

Matching is plain substring containment over a normalized message:
lower-cased, punctuation (except apostrophes) turned into spaces, whitespace
collapsed, and padded with a single space on each side, so a trigger like
" hi " only matches the whole word. The first matching shortcut wins.
"""

import json
import re
import string
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from app_config import BOT_NAME, SHORTCUTS_PATH
from chat_logger import get_logger, preview_for_log
from models import KnowledgeSnapshot

logger = get_logger()

_NON_WORD_RE = re.compile(r"[^\w']+")


def normalize_message(message: str) -> str:
    text = _NON_WORD_RE.sub(" ", (message or "").lower().strip())
    return f" {' '.join(text.split())} "


# ─────────────────────────────────────────────
# Template placeholders
# ─────────────────────────────────────────────

def _services_listing(snapshot: KnowledgeSnapshot) -> str:
    return ", ".join(
        f"{service.title} ({service.path})" if service.path else service.title
        for service in snapshot.services
    )


def _metrics_listing(snapshot: KnowledgeSnapshot) -> str:
    return "; ".join(
        f"{metric.title}: {metric.value} {metric.unit}".rstrip()
        for metric in snapshot.impact_metrics
    )


PLACEHOLDERS: Dict[str, Callable[[KnowledgeSnapshot], str]] = {
    "services": _services_listing,
    "metrics": _metrics_listing,
    "bot_name": lambda snapshot: BOT_NAME,
}


# ─────────────────────────────────────────────
# Shortcuts
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class Shortcut:
    name: str
    predicate: Callable[[str], bool]
    handler: Callable[[KnowledgeSnapshot], str]


def phrase_predicate(all_of: Sequence[str] = (), any_of: Sequence[str] = ()) -> Callable[[str], bool]:
    """Match when every `all_of` phrase and (if given) one `any_of` phrase occurs."""
    required = tuple(all_of)
    alternatives = tuple(any_of)
    if not required and not alternatives:
        raise ValueError("A shortcut needs at least one trigger phrase")

    def predicate(normalized: str) -> bool:
        if any(phrase not in normalized for phrase in required):
            return False
        return not alternatives or any(phrase in normalized for phrase in alternatives)

    return predicate


def template_handler(template: str) -> Callable[[KnowledgeSnapshot], str]:
    fields = {name for _, name, _, _ in string.Formatter().parse(template) if name}
    unknown = fields - set(PLACEHOLDERS)
    if unknown:
        raise ValueError(f"Unknown template placeholder(s): {', '.join(sorted(unknown))}")

    def handler(snapshot: KnowledgeSnapshot) -> str:
        return template.format(**{name: PLACEHOLDERS[name](snapshot) for name in fields})

    return handler


def shortcut_from_config(entry: Dict) -> Shortcut:
    try:
        name = entry["name"]
        template = entry["template"]
    except (KeyError, TypeError) as e:
        raise ValueError(f"Shortcut entry is missing a required field: {e}") from e

    return Shortcut(
        name=name,
        predicate=phrase_predicate(entry.get("all_of", ()), entry.get("any_of", ())),
        handler=template_handler(template),
    )


def load_shortcuts(path: str = SHORTCUTS_PATH) -> List[Shortcut]:
    """Load the ordered shortcut catalogue from JSON."""
    with open(path, encoding="utf-8") as fh:
        entries = json.load(fh)
    if not isinstance(entries, list):
        raise ValueError(f"Shortcut catalogue {path} must be a JSON list")
    return [shortcut_from_config(entry) for entry in entries]


# ─────────────────────────────────────────────
# Router
# ─────────────────────────────────────────────

class ResponseRouter:
    """Produces a bot reply, preferring shortcuts over the completion service."""

    def __init__(self, gateway, shortcuts: Optional[List[Shortcut]] = None):
        self.gateway = gateway
        self.shortcuts = load_shortcuts() if shortcuts is None else list(shortcuts)

    def match(self, message: str) -> Optional[Shortcut]:
        normalized = normalize_message(message)
        for shortcut in self.shortcuts:
            if shortcut.predicate(normalized):
                return shortcut
        return None

    def route(self, message: str, snapshot: KnowledgeSnapshot, session_id: Optional[str] = None) -> str:
        """
        Reply to `message`.

        Raises:
            CompletionError: when no shortcut matches and the gateway fails
        """
        shortcut = self.match(message)
        if shortcut is not None:
            logger.info(f"Shortcut matched | session={session_id} | shortcut={shortcut.name}")
            return shortcut.handler(snapshot)

        logger.info(
            f"No shortcut matched, delegating to completion | session={session_id} | "
            f"message=\"{preview_for_log(message)}\""
        )
        return self.gateway.complete(message, snapshot, session_id=session_id)
