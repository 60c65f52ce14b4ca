"""
ECODATA CIC — Chat Assistant API Backend
Runs on port 5009 with the /api/chatbot endpoint.

Usage:
    python server.py

Endpoint:
    POST http://localhost:5009/api/chatbot
    Body: {"message": "...", "sessionId": "..."}
"""

from flask import Flask
from flask_cors import CORS

from app_config import PORT, DEBUG, KNOWLEDGE_PATH
from chat_logger import get_logger
from completion_gateway import CompletionGateway
from knowledge_loader import KnowledgeLoader
from rate_limiter import RateLimiter
from response_router import ResponseRouter
from routes.chatbot import chatbot_bp

logger = get_logger()


def create_app(limiter=None, router=None, knowledge_loader=None) -> Flask:
    """
    Build the Flask app.

    Each app owns its rate limiter, router and knowledge loader, so tests can
    create fully independent instances.
    """
    app = Flask(__name__)
    CORS(app)

    app.extensions["chatbot"] = {
        "limiter": limiter or RateLimiter(),
        "router": router or ResponseRouter(CompletionGateway()),
        "knowledge_loader": knowledge_loader or KnowledgeLoader(),
    }
    app.register_blueprint(chatbot_bp)
    return app


app = create_app()


# ═══════════════════════════════════════════
# STARTUP
# ═══════════════════════════════════════════

def initialize_knowledge():
    """Check the knowledge corpus once at startup so problems show up early."""
    loader = app.extensions["chatbot"]["knowledge_loader"]
    try:
        counts = loader.load_snapshot().counts()
        logger.info(f"Knowledge corpus ready | path={KNOWLEDGE_PATH} | counts={counts}")
    except (OSError, ValueError) as e:
        logger.error(f"Knowledge corpus could not be loaded | path={KNOWLEDGE_PATH} | error={e}")
        print(f"⚠️  Knowledge corpus error: {e}")
        print("   Completion replies will not be grounded until the corpus loads.")


if __name__ == "__main__":
    print("=" * 60)
    print("  ECODATA CIC — Chat Assistant API Server")
    print("=" * 60)
    print()

    initialize_knowledge()

    print()
    print(f"🚀 Starting server on http://localhost:{PORT}")
    print(f"   POST http://localhost:{PORT}/api/chatbot")
    print(f"   GET  http://localhost:{PORT}/api/chatbot/health")
    print()

    app.run(
        host="0.0.0.0",
        port=PORT,
        debug=DEBUG,
    )
