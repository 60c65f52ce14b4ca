"""
Tests for the /api/chatbot endpoint, plus end-to-end flows that drive the
session controller against the real Flask app.
"""

from unittest.mock import Mock

import pytest
import requests

from app_config import CLIENT_FALLBACK_MESSAGE, COMPLETION_FALLBACK_MESSAGE, RATE_LIMIT_MESSAGE
from completion_gateway import CompletionGateway, LLMClient
from conftest import FlaskClientSession, StaticKnowledgeLoader
from errors import CompletionError
from models import Sender
from rate_limiter import RateLimiter
from response_router import ResponseRouter
from routes.chatbot import ERROR_MESSAGE
from server import create_app
from session_controller import ChatSessionController, HttpChatTransport


def _post(client, message="Tell me about your climate work", session_id="sess-1"):
    return client.post("/api/chatbot", json={"message": message, "sessionId": session_id})


def _provider_app(limiter, knowledge_loader, provider, body):
    """App whose gateway talks to a stand-in provider returning `body`."""
    response = Mock()
    response.status_code = 200
    response.json.return_value = body
    http = Mock()
    http.post.return_value = response
    gateway = CompletionGateway(LLMClient(provider=provider, api_key="k", session=http))
    return create_app(limiter=limiter, router=ResponseRouter(gateway), knowledge_loader=knowledge_loader)


class TestValidation:
    """Invalid turn requests are rejected before anything else runs."""

    @pytest.mark.parametrize("body", [
        {"sessionId": "s1"},
        {"message": "", "sessionId": "s1"},
        {"message": "   ", "sessionId": "s1"},
        {"message": 42, "sessionId": "s1"},
        {"message": "hello"},
        {"message": "hello", "sessionId": ""},
        {"message": "hello", "sessionId": 7},
        ["hello"],
    ])
    def test_bad_body_is_400(self, client, limiter, mock_gateway, body):
        """Missing, blank or mistyped fields should give 400 with a message."""
        resp = client.post("/api/chatbot", json=body)
        assert resp.status_code == 400
        assert resp.get_json()["message"]
        mock_gateway.complete.assert_not_called()
        assert limiter.get_entry("s1") is None

    def test_non_json_body_is_400(self, client):
        """A body that is not JSON should give 400."""
        resp = client.post("/api/chatbot", data="hello", content_type="text/plain")
        assert resp.status_code == 400

    def test_invalid_requests_do_not_consume_quota(self, client):
        """Rejected requests should not count against the session's quota."""
        for _ in range(15):
            client.post("/api/chatbot", json={"message": "", "sessionId": "sess-1"})
        assert _post(client).status_code == 200

    def test_get_not_allowed(self, client):
        """Only POST is accepted on the turn endpoint."""
        assert client.get("/api/chatbot").status_code == 405


class TestReplies:
    """Successful turns and how failures are folded into replies."""

    def test_shortcut_reply(self, client, mock_gateway):
        """Greetings are answered without the completion service."""
        resp = _post(client, "hello")
        assert resp.status_code == 200
        assert resp.get_json()["response"].startswith("Hello! I'm EcodataBot")
        mock_gateway.complete.assert_not_called()

    def test_completion_reply(self, client, mock_gateway, snapshot):
        """Other messages go to the gateway with the snapshot and session id."""
        resp = _post(client, "Tell me about your carbon work", "sess-9")
        assert resp.status_code == 200
        assert resp.get_json() == {"response": "Our carbon work focuses on measurable reductions."}
        mock_gateway.complete.assert_called_once_with(
            "Tell me about your carbon work", snapshot, session_id="sess-9",
        )

    def test_message_is_trimmed(self, client, mock_gateway):
        """Surrounding whitespace is removed before routing."""
        _post(client, "   What is SDG 13?   ")
        assert mock_gateway.complete.call_args[0][0] == "What is SDG 13?"

    def test_completion_error_folds_into_fallback(self, client, mock_gateway):
        """A completion failure should still give 200 with the fallback reply."""
        mock_gateway.complete.side_effect = CompletionError("timed out", provider="openai")
        resp = _post(client)
        assert resp.status_code == 200
        assert resp.get_json() == {"response": COMPLETION_FALLBACK_MESSAGE}

    @pytest.mark.parametrize("provider, body", [
        ("openai", {"choices": [{"message": {"content": "Hi"}}],
                    "usage": {"prompt_tokens": None, "completion_tokens": None, "total_tokens": None}}),
        ("openai", {"choices": [{"message": {"content": "Hi"}}], "usage": ["x"]}),
    ])
    def test_odd_provider_usage_still_answers(self, limiter, knowledge_loader, provider, body):
        """Null or mistyped usage figures should not stop the reply."""
        client = _provider_app(limiter, knowledge_loader, provider, body).test_client()
        resp = _post(client)
        assert resp.status_code == 200
        assert resp.get_json() == {"response": "Hi"}

    @pytest.mark.parametrize("provider, body", [
        ("anthropic", {"content": "plain string"}),
        ("anthropic", {"content": [42, "text"]}),
        ("openai", {"choices": "none"}),
        ("openai", ["not", "an", "object"]),
    ])
    def test_malformed_provider_body_folds_into_fallback(self, limiter, knowledge_loader, provider, body):
        """Provider bodies of the wrong shape should give 200 with the fallback reply."""
        client = _provider_app(limiter, knowledge_loader, provider, body).test_client()
        resp = _post(client)
        assert resp.status_code == 200
        assert resp.get_json() == {"response": COMPLETION_FALLBACK_MESSAGE}

    def test_snapshot_read_per_request(self, client, knowledge_loader):
        """Each turn reads a fresh knowledge snapshot."""
        _post(client, "hello")
        _post(client, "hello")
        assert knowledge_loader.calls == 2

    def test_unreadable_corpus_still_answers(self, limiter, router, mock_gateway):
        """A missing corpus degrades to an empty snapshot instead of failing."""
        loader = Mock()
        loader.load_snapshot.side_effect = OSError("missing file")
        client = create_app(limiter=limiter, router=router, knowledge_loader=loader).test_client()

        resp = _post(client)
        assert resp.status_code == 200
        snapshot = mock_gateway.complete.call_args[0][1]
        assert snapshot.services == []

    def test_unexpected_error_is_500(self, limiter, knowledge_loader):
        """Bugs outside the completion path give 500 with a generic message."""
        router = Mock()
        router.route.side_effect = RuntimeError("boom")
        client = create_app(limiter=limiter, router=router, knowledge_loader=knowledge_loader).test_client()

        resp = _post(client)
        assert resp.status_code == 500
        assert resp.get_json() == {"message": ERROR_MESSAGE}


class TestRateLimiting:
    """Per-session quota enforced at the endpoint."""

    def test_eleventh_request_is_429(self, client, mock_gateway):
        """The 11th request in a window gets 429 with retryAfter."""
        for _ in range(10):
            assert _post(client).status_code == 200

        resp = _post(client)
        assert resp.status_code == 429
        body = resp.get_json()
        assert body["message"] == RATE_LIMIT_MESSAGE
        assert body["retryAfter"] == 60
        assert mock_gateway.complete.call_count == 10

    def test_rate_limited_before_routing(self, client, mock_gateway):
        """A rate-limited turn never reaches the router."""
        for _ in range(10):
            _post(client, "hello")
        _post(client)
        mock_gateway.complete.assert_not_called()

    def test_quota_is_per_session(self, client):
        """One busy session does not block another."""
        for _ in range(10):
            _post(client, session_id="busy")
        assert _post(client, session_id="busy").status_code == 429
        assert _post(client, session_id="quiet").status_code == 200

    def test_quota_returns_after_window(self, client, clock):
        """Requests are allowed again once the window has passed."""
        for _ in range(10):
            _post(client)
        clock.advance(61)
        assert _post(client).status_code == 200

    def test_apps_do_not_share_limiter_state(self, router, knowledge_loader, clock):
        """Each app instance owns its own limiter."""
        first = create_app(RateLimiter(clock=clock), router, knowledge_loader).test_client()
        second = create_app(RateLimiter(clock=clock), router, knowledge_loader).test_client()
        for _ in range(10):
            _post(first)
        assert _post(first).status_code == 429
        assert _post(second).status_code == 200


class TestHealth:
    """Health check endpoint."""

    def test_health(self, client):
        """Reports corpus counts and the shortcut catalogue."""
        resp = client.get("/api/chatbot/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "ok"
        assert body["knowledge"]["services"] == 3
        assert body["shortcuts"] == ["greeting", "contact", "services", "donate", "newsletter"]

    def test_health_degraded(self, limiter, router):
        """An unreadable corpus is reported as degraded."""
        loader = Mock()
        loader.load_snapshot.side_effect = ValueError("bad json")
        client = create_app(limiter=limiter, router=router, knowledge_loader=loader).test_client()
        body = client.get("/api/chatbot/health").get_json()
        assert body["status"] == "degraded"
        assert body["knowledge"]["services"] == 0


def _widget(client):
    """Session controller talking to the Flask app through the HTTP transport."""
    http = FlaskClientSession(client)
    transport = HttpChatTransport("http://localhost:5009", session=http)
    return ChatSessionController(transport, welcome_message=None), http


class TestEndToEnd:
    """Widget, transport and server working together."""

    def test_greeting_round_trip(self, client, mock_gateway):
        """A greeting gives a user turn and a canned bot turn, with no completion call."""
        controller, http = _widget(client)
        controller.mount()
        controller.submit("hello")

        turns = controller.transcript
        assert [t.sender for t in turns] == [Sender.USER, Sender.BOT]
        assert turns[1].content.startswith("Hello! I'm EcodataBot")
        assert http.requests == [{"message": "hello", "sessionId": controller.session.session_id}]
        mock_gateway.complete.assert_not_called()

    def test_services_reply_lists_every_path(self, client, snapshot):
        """The services shortcut names every service with its page path."""
        controller, _ = _widget(client)
        controller.submit("What services do you offer?")

        reply = controller.transcript[-1].content
        for service in snapshot.services:
            assert f"{service.title} ({service.path})" in reply

    def test_provider_timeout_gives_completion_fallback(self, limiter, knowledge_loader):
        """A provider timeout shows the server's fallback reply in the widget."""
        http = Mock()
        http.post.side_effect = requests.exceptions.Timeout("slow provider")
        gateway = CompletionGateway(LLMClient(provider="openai", api_key="k", session=http))
        app = create_app(limiter=limiter, router=ResponseRouter(gateway), knowledge_loader=knowledge_loader)

        controller, _ = _widget(app.test_client())
        controller.submit("What does SDG 13 involve?")

        assert controller.transcript[-1].content == COMPLETION_FALLBACK_MESSAGE

    def test_eleventh_rapid_turn_shows_client_fallback(self, client):
        """The rate-limited 11th turn shows the client fallback reply."""
        controller, _ = _widget(client)
        for i in range(10):
            controller.submit(f"question {i}")
            assert controller.transcript[-1].content != CLIENT_FALLBACK_MESSAGE

        controller.submit("one more")
        assert controller.transcript[-1].content == CLIENT_FALLBACK_MESSAGE
        assert len(controller.transcript) == 22

    def test_each_widget_gets_its_own_session(self, client):
        """Two widgets never share a session id."""
        first, _ = _widget(client)
        second, _ = _widget(client)
        first.mount()
        second.mount()
        assert first.session.session_id != second.session.session_id

    def test_static_loader_used(self, limiter, router, snapshot):
        """The injected knowledge loader is the one the endpoint reads."""
        loader = StaticKnowledgeLoader(snapshot)
        client = create_app(limiter=limiter, router=router, knowledge_loader=loader).test_client()
        controller, _ = _widget(client)
        controller.submit("hi")
        assert loader.calls == 1
