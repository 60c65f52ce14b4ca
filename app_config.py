"""
Application configuration module for the ECODATA Chat API.
Contains environment variables, constants, and settings.
"""

import os
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# ═══════════════════════════════════════════
# ENVIRONMENT VARIABLES
# ═══════════════════════════════════════════

PORT = int(os.getenv("PORT", 5009))
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ═══════════════════════════════════════════
# CONTENT SOURCES
# ═══════════════════════════════════════════

KNOWLEDGE_PATH = os.getenv("KNOWLEDGE_PATH", os.path.join(BASE_DIR, "data", "knowledge.json"))
SHORTCUTS_PATH = os.getenv("SHORTCUTS_PATH", os.path.join(BASE_DIR, "config", "shortcuts.json"))

BOT_NAME = "EcodataBot"
ORGANISATION_NAME = "ECODATA CIC"

# ═══════════════════════════════════════════
# RATE LIMITING
# ═══════════════════════════════════════════

RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10"))
RATE_LIMIT_WINDOW_SECONDS = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# ═══════════════════════════════════════════
# LLM COMPLETION CONFIGURATION
# ═══════════════════════════════════════════

# LLM Provider settings
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai")  # openai, anthropic, azure_openai, copilot
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o")
LLM_API_KEY = os.getenv("LLM_API_KEY", os.getenv("OPENAI_API_KEY", ""))
LLM_API_BASE_URL = os.getenv("LLM_API_BASE_URL", "")
COPILOT_API_TOKEN = os.getenv("COPILOT_API_TOKEN", "")

# LLM behavior settings (server-side only, never taken from the request)
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "200"))
LLM_TIMEOUT_SECONDS = int(os.getenv("LLM_TIMEOUT_SECONDS", "20"))

# Cost estimation (USD per 1000 tokens)
LLM_COST_PER_1K_INPUT = float(os.getenv("LLM_COST_PER_1K_INPUT", "0.0025"))
LLM_COST_PER_1K_OUTPUT = float(os.getenv("LLM_COST_PER_1K_OUTPUT", "0.01"))

# ═══════════════════════════════════════════
# PROMPT SIZE LIMITS
# ═══════════════════════════════════════════

MAX_FAQS = 25
MAX_SERVICES = 12
MAX_METRICS = 12
MAX_THEMES = 17
SERVICE_EXCERPT_CHARS = 100
THEME_EXCERPT_CHARS = 100
FAQ_ANSWER_CHARS = 300
MAX_PROMPT_CHARS = 12000

# ═══════════════════════════════════════════
# CHAT CLIENT
# ═══════════════════════════════════════════

CHAT_API_BASE_URL = os.getenv("CHAT_API_BASE_URL", f"http://localhost:{PORT}")
CHAT_CLIENT_TIMEOUT = float(os.getenv("CHAT_CLIENT_TIMEOUT", "30"))
WELCOME_DELAY_SECONDS = float(os.getenv("WELCOME_DELAY_SECONDS", "0.5"))

# ═══════════════════════════════════════════
# USER-FACING MESSAGES
# ═══════════════════════════════════════════

WELCOME_MESSAGE = (
    "Hi 👋 I'm EcodataBot. Need help exploring our services or finding the right impact info?"
)

# Returned by the server whenever the completion service fails
COMPLETION_FALLBACK_MESSAGE = (
    "I'm sorry, I'm having trouble connecting right now. Please try again later "
    "or contact ECODATA directly through our contact page at /contact."
)

# Shown by the widget when the turn request itself fails (network, 4xx/5xx)
CLIENT_FALLBACK_MESSAGE = (
    "Sorry, I'm having trouble connecting right now. Please try again later "
    "or contact us directly through our contact page."
)

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
