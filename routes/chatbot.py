"""
Chatbot endpoint as a Flask Blueprint.

Request:
    POST /api/chatbot
    {"message": "What services do you offer?", "sessionId": "k3j5h2g8f1"}

Response:
    200 {"response": "..."}
    400 {"message": "..."}                    invalid request
    429 {"message": "...", "retryAfter": 42}  rate limited

Completion failures never surface as errors: they are logged and folded
into a 200 response carrying the fallback reply.
"""

import time
from datetime import datetime, timezone
from typing import Tuple

from flask import Blueprint, current_app, jsonify, request

from app_config import COMPLETION_FALLBACK_MESSAGE, RATE_LIMIT_MESSAGE
from chat_logger import get_logger, preview_for_log, sanitize_log_string
from errors import CompletionError, RateLimitExceeded, ValidationError
from models import KnowledgeSnapshot

logger = get_logger()

chatbot_bp = Blueprint("chatbot", __name__)

ERROR_MESSAGE = (
    "I'm having trouble processing your request right now. Please try again later "
    "or contact ECODATA directly through our contact page."
)


def _components() -> dict:
    return current_app.extensions["chatbot"]


def parse_turn_request(body) -> Tuple[str, str]:
    """
    Validate a turn request body and return (message, session_id).

    Raises:
        ValidationError: body is not an object, or message/sessionId is
            missing, not a string, or blank
    """
    if not isinstance(body, dict):
        raise ValidationError("Invalid request. Send JSON with 'message' and 'sessionId' fields.")

    message = body.get("message")
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("Message is required and must be a non-empty string")

    session_id = body.get("sessionId")
    if not isinstance(session_id, str) or not session_id.strip():
        raise ValidationError("sessionId is required and must be a non-empty string")

    return message.strip(), session_id.strip()


def enforce_rate_limit(limiter, session_id: str) -> None:
    if not limiter.check(session_id):
        raise RateLimitExceeded(session_id, limiter.retry_after(session_id))


def load_snapshot(loader, session_id: str) -> KnowledgeSnapshot:
    """Fetch the knowledge snapshot; an unreadable corpus degrades to an empty one."""
    try:
        return loader.load_snapshot()
    except (OSError, ValueError) as e:
        logger.error(f"Knowledge snapshot unavailable | session={session_id} | error={e}")
        return KnowledgeSnapshot()


@chatbot_bp.route("/api/chatbot", methods=["POST"])
def chatbot():
    """Main chatbot turn endpoint."""
    start_time = time.time()
    components = _components()

    # ─── Step 1: Validate ───
    try:
        message, session_id = parse_turn_request(request.get_json(silent=True))
    except ValidationError as e:
        logger.warning(f"POST /api/chatbot | Rejected | reason={e}")
        return jsonify({"message": str(e)}), 400

    logger.info(
        f'POST /api/chatbot | session={sanitize_log_string(session_id)} | '
        f'message="{preview_for_log(message)}"'
    )

    # ─── Step 2: Rate limit ───
    try:
        enforce_rate_limit(components["limiter"], session_id)
    except RateLimitExceeded as e:
        logger.warning(f"POST /api/chatbot | session={session_id} | Rate limited | retry_after={e.retry_after}")
        return jsonify({"message": RATE_LIMIT_MESSAGE, "retryAfter": e.retry_after}), 429

    # ─── Step 3: Route (shortcut or completion) ───
    try:
        snapshot = load_snapshot(components["knowledge_loader"], session_id)
        try:
            reply = components["router"].route(message, snapshot, session_id=session_id)
        except CompletionError as e:
            logger.error(
                f"Completion failed | session={session_id} | provider={e.provider} | "
                f"status={e.status} | error={e} | "
                f"timestamp={datetime.now(timezone.utc).isoformat()}"
            )
            reply = COMPLETION_FALLBACK_MESSAGE
    except Exception:
        logger.exception(f"POST /api/chatbot | session={session_id} | Unexpected error")
        return jsonify({"message": ERROR_MESSAGE}), 500

    logger.info(
        f"POST /api/chatbot | session={session_id} | Response sent | "
        f"response_time_ms={round((time.time() - start_time) * 1000)}"
    )
    return jsonify({"response": reply}), 200


@chatbot_bp.route("/api/chatbot/health", methods=["GET"])
def health():
    """Health check endpoint."""
    components = _components()
    try:
        knowledge = components["knowledge_loader"].load_snapshot().counts()
        status = "ok"
    except (OSError, ValueError) as e:
        logger.warning(f"Health check | knowledge unavailable | error={e}")
        knowledge = KnowledgeSnapshot().counts()
        status = "degraded"

    return jsonify({
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "knowledge": knowledge,
        "shortcuts": [shortcut.name for shortcut in components["router"].shortcuts],
    })
