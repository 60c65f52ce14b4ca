"""
Completion Gateway — grounded natural-language replies from an LLM.

Used when no deterministic shortcut matches a visitor's message:
1. Build a system prompt from the knowledge snapshot (bounded, deterministic)
2. Send a single-turn request (system prompt + user message) to the provider
3. Normalize every failure into CompletionError

Privacy-First Design:
- Only public site content goes into the system prompt
- User messages have emails, phone and card numbers masked before sending
- Logs carry the session id and a truncated preview, never the full message
"""

import re
import time
import requests
from typing import Any, Dict, List, Optional

from app_config import (
    BOT_NAME,
    ORGANISATION_NAME,
    LLM_PROVIDER,
    LLM_MODEL,
    LLM_API_KEY,
    LLM_API_BASE_URL,
    COPILOT_API_TOKEN,
    LLM_TEMPERATURE,
    LLM_MAX_TOKENS,
    LLM_TIMEOUT_SECONDS,
    LLM_COST_PER_1K_INPUT,
    LLM_COST_PER_1K_OUTPUT,
    MAX_FAQS,
    MAX_SERVICES,
    MAX_METRICS,
    MAX_THEMES,
    SERVICE_EXCERPT_CHARS,
    THEME_EXCERPT_CHARS,
    FAQ_ANSWER_CHARS,
    MAX_PROMPT_CHARS,
)
from chat_logger import get_logger, preview_for_log, redact_secrets
from errors import CompletionError
from models import KnowledgeSnapshot

logger = get_logger()

SUPPORTED_PROVIDERS = ("openai", "azure_openai", "copilot", "anthropic")


# ══════════════════════════════════════════════════════════════
# PRIVACY & SANITIZATION
# ══════════════════════════════════════════════════════════════

def sanitize_for_llm(text: str) -> str:
    """
    Remove PII from user messages before sending to the LLM.

    Strips email addresses, card numbers and phone numbers.
    """
    if not text:
        return text

    text = re.sub(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b', '[EMAIL]', text)

    # Cards before phones: the phone pattern would eat card digit groups
    text = re.sub(r'\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b', '[CARD]', text)

    # UK and international numbers (+44 20 7946 0958, 07700 900123, 555-123-4567)
    text = re.sub(r'(?<!\w)\+?\d[\d\s().-]{7,}\d\b', '[PHONE]', text)

    return text


# ══════════════════════════════════════════════════════════════
# PROMPT ASSEMBLY
# ══════════════════════════════════════════════════════════════

PERSONA_PREAMBLE = f"""You are {BOT_NAME}, the helpful assistant for {ORGANISATION_NAME}, a UK-based Community Interest Company dedicated to sustainability, data analytics, and environmental impact.

Your role is to answer questions about {ORGANISATION_NAME}'s services, impact metrics, and sustainability initiatives. Be friendly and informative, and guide visitors toward taking action like booking appointments, donating, or subscribing to the newsletter.

GUIDELINES:
1. Keep responses concise: under 120 words unless the question genuinely needs more detail
2. Only link to site paths listed in the information below; never invent a path and never use just "/services" on its own
3. For detailed, technical or ambiguous questions, suggest booking an appointment at /book-appointment or contacting us at /contact
4. For donation enquiries, direct visitors to /support; for newsletter subscriptions, direct them to /newsletter
5. Use British English spelling throughout (e.g. "organisation", not "organization")
6. If you don't know an answer, don't make things up; suggest contacting {ORGANISATION_NAME} directly
7. Maintain a positive, supportive tone aligned with environmental values"""


def _excerpt(text: str, limit: int) -> str:
    text = " ".join((text or "").split())
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def _theme_sort_key(theme_id: str):
    return (0, int(theme_id), "") if theme_id.isdigit() else (1, 0, theme_id)


def _services_section(snapshot: KnowledgeSnapshot) -> List[str]:
    lines = []
    for service in snapshot.services[:MAX_SERVICES]:
        summary = _excerpt(service.short_description or service.description, SERVICE_EXCERPT_CHARS)
        path = f" ({service.path})" if service.path else ""
        lines.append(f"- {service.title}{path}: {summary}")
    return lines


def _metrics_section(snapshot: KnowledgeSnapshot) -> List[str]:
    return [
        f"- {metric.title}: {metric.value} {metric.unit}".rstrip()
        for metric in snapshot.impact_metrics[:MAX_METRICS]
    ]


def _themes_section(snapshot: KnowledgeSnapshot) -> List[str]:
    theme_ids = sorted(snapshot.themes, key=_theme_sort_key)[:MAX_THEMES]
    return [
        f"- SDG {theme_id}: {snapshot.themes[theme_id].title} - "
        f"{_excerpt(snapshot.themes[theme_id].description, THEME_EXCERPT_CHARS)}"
        for theme_id in theme_ids
    ]


def _faqs_section(snapshot: KnowledgeSnapshot) -> List[str]:
    return [
        f"Q: {_excerpt(faq.question, FAQ_ANSWER_CHARS)}\nA: {_excerpt(faq.answer, FAQ_ANSWER_CHARS)}"
        for faq in snapshot.faqs[:MAX_FAQS]
    ]


def build_system_prompt(snapshot: KnowledgeSnapshot) -> str:
    """
    Construct the grounding prompt from a knowledge snapshot.

    The same snapshot always produces the same prompt. Every section is
    capped in item count and excerpt length, and the whole prompt is cut at
    MAX_PROMPT_CHARS on a line boundary.
    """
    sections = [
        ("SERVICES", _services_section(snapshot), "\n"),
        ("IMPACT METRICS", _metrics_section(snapshot), "\n"),
        ("SUSTAINABLE DEVELOPMENT GOALS (SDGs) WE SUPPORT", _themes_section(snapshot), "\n"),
        ("FREQUENTLY ASKED QUESTIONS", _faqs_section(snapshot), "\n\n"),
    ]

    parts = [PERSONA_PREAMBLE, f"Here's key information about {ORGANISATION_NAME}:"]
    for heading, lines, joiner in sections:
        body = joiner.join(lines) if lines else "None available"
        parts.append(f"{heading}:\n{body}")

    prompt = "\n\n".join(parts)
    if len(prompt) > MAX_PROMPT_CHARS:
        cut = prompt[:MAX_PROMPT_CHARS]
        prompt = cut[:cut.rfind("\n")] if "\n" in cut else cut
    return prompt


# ══════════════════════════════════════════════════════════════
# LLM CLIENT (Multi-Provider Support)
# ══════════════════════════════════════════════════════════════

class LLMClient:
    """
    Abstraction over LLM providers, configured from environment variables.

    Supported providers:
    - openai: OpenAI API
    - azure_openai: Azure OpenAI Service
    - copilot: GitHub Copilot API
    - anthropic: Anthropic Claude API
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.provider = (provider or LLM_PROVIDER).lower()
        self.model = model or LLM_MODEL
        self.temperature = LLM_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or LLM_MAX_TOKENS
        self.timeout = timeout or LLM_TIMEOUT_SECONDS
        self.http = session or requests.Session()

        base_url = api_url or LLM_API_BASE_URL
        if self.provider == "openai":
            self.api_key = api_key or LLM_API_KEY
            self.api_url = base_url or "https://api.openai.com/v1/chat/completions"
        elif self.provider == "azure_openai":
            self.api_key = api_key or LLM_API_KEY
            self.api_url = base_url  # Must be provided for Azure
        elif self.provider == "copilot":
            self.api_key = api_key or COPILOT_API_TOKEN
            self.api_url = base_url or "https://api.githubcopilot.com/chat/completions"
        elif self.provider == "anthropic":
            self.api_key = api_key or LLM_API_KEY
            self.api_url = base_url or "https://api.anthropic.com/v1/messages"
        else:
            raise ValueError(f"Unsupported LLM provider: {self.provider}")

    def chat_completion(self, system_prompt: str, user_message: str) -> Dict[str, Any]:
        """
        Send a single-turn completion request to the configured provider.

        Returns:
            Dict with content, input_tokens, output_tokens, total_tokens,
            model and latency_ms.

        Raises:
            CompletionError: on timeout, transport failure, non-2xx status,
                or a response body without text content
        """
        if not self.api_url:
            raise CompletionError("No API URL configured", provider=self.provider)

        start_time = time.time()
        try:
            if self.provider == "anthropic":
                response = self._post(self._anthropic_request(system_prompt, user_message))
                result = self._parse_anthropic(response.json())
            else:
                response = self._post(self._openai_style_request(system_prompt, user_message))
                result = self._parse_openai_style(response.json())
        except requests.exceptions.Timeout as e:
            raise CompletionError(f"Request timed out after {self.timeout}s", provider=self.provider) from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            body = getattr(e.response, "text", "")
            if isinstance(body, str) and body:
                logger.warning(
                    f"Provider error body | provider={self.provider} | status={status} | "
                    f"body=\"{preview_for_log(redact_secrets(body), 200)}\""
                )
            raise CompletionError(f"HTTP {status} from provider", provider=self.provider, status=status) from e
        except requests.exceptions.RequestException as e:
            raise CompletionError(f"Transport error: {redact_secrets(str(e))}", provider=self.provider) from e
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise CompletionError(f"Malformed response body: {e}", provider=self.provider) from e

        result["latency_ms"] = int((time.time() - start_time) * 1000)
        return result

    def _post(self, request_args: Dict[str, Any]) -> requests.Response:
        response = self.http.post(self.api_url, timeout=self.timeout, **request_args)
        response.raise_for_status()
        return response

    def _openai_style_request(self, system_prompt: str, user_message: str) -> Dict[str, Any]:
        """OpenAI-compatible request (OpenAI, Azure OpenAI, Copilot)."""
        headers = {"Content-Type": "application/json"}
        if self.provider == "azure_openai":
            headers["api-key"] = self.api_key
        else:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        return {"headers": headers, "json": payload}

    def _anthropic_request(self, system_prompt: str, user_message: str) -> Dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
        }
        payload = {
            "model": self.model,
            "system": system_prompt,
            "messages": [
                {"role": "user", "content": user_message},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        return {"headers": headers, "json": payload}

    def _parse_openai_style(self, data: Dict[str, Any]) -> Dict[str, Any]:
        content = data["choices"][0]["message"]["content"]
        usage = _usage(data)
        return {
            "content": content,
            "input_tokens": _token_count(usage, "prompt_tokens"),
            "output_tokens": _token_count(usage, "completion_tokens"),
            "total_tokens": _token_count(usage, "total_tokens"),
            "model": data.get("model") or self.model,
        }

    def _parse_anthropic(self, data: Dict[str, Any]) -> Dict[str, Any]:
        blocks = data["content"]
        if not isinstance(blocks, list):
            raise ValueError("'content' must be a list of blocks")
        content = "".join(
            block.get("text") or ""
            for block in blocks
            if isinstance(block, dict) and block.get("type", "text") == "text"
        )
        usage = _usage(data)
        input_tokens = _token_count(usage, "input_tokens")
        output_tokens = _token_count(usage, "output_tokens")
        return {
            "content": content,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "model": data.get("model") or self.model,
        }


def _usage(data: Dict[str, Any]) -> Dict[str, Any]:
    usage = data.get("usage")
    return usage if isinstance(usage, dict) else {}


def _token_count(usage: Dict[str, Any], key: str) -> int:
    # Providers sometimes send null or omit counts; usage is only for cost logging
    value = usage.get(key)
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


# ══════════════════════════════════════════════════════════════
# GATEWAY
# ══════════════════════════════════════════════════════════════

class CompletionGateway:
    """Builds the grounding prompt and returns the provider's reply text."""

    def __init__(self, client: Optional[LLMClient] = None):
        self._client = client

    @property
    def client(self) -> LLMClient:
        # Built lazily so a misconfigured provider only fails completion calls
        if self._client is None:
            self._client = LLMClient()
        return self._client

    def complete(
        self,
        message: str,
        snapshot: KnowledgeSnapshot,
        session_id: Optional[str] = None,
    ) -> str:
        """
        Get a grounded reply for `message`.

        Raises:
            CompletionError: for any failure, including an empty reply
        """
        logger.info(
            f"Completion requested | session={session_id} | "
            f"message=\"{preview_for_log(message)}\""
        )

        try:
            client = self.client
        except ValueError as e:
            raise CompletionError(str(e)) from e

        system_prompt = build_system_prompt(snapshot)
        llm_response = client.chat_completion(system_prompt, sanitize_for_llm(message))

        input_tokens = llm_response.get("input_tokens") or 0
        output_tokens = llm_response.get("output_tokens") or 0
        input_cost = (input_tokens / 1000) * LLM_COST_PER_1K_INPUT
        output_cost = (output_tokens / 1000) * LLM_COST_PER_1K_OUTPUT
        logger.info(
            f"Completion API call | session={session_id} | model={llm_response.get('model')} | "
            f"input_tokens={input_tokens} | output_tokens={output_tokens} | "
            f"latency_ms={llm_response.get('latency_ms')} | "
            f"cost_estimate=${input_cost + output_cost:.4f}"
        )

        content = llm_response.get("content")
        if not isinstance(content, str) or not content.strip():
            raise CompletionError("Provider returned an empty reply", provider=client.provider)

        return content.strip()
