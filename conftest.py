"""
Pytest configuration and fixtures for the ECODATA chat assistant tests.

Provides a fixed knowledge snapshot, a controllable clock, a mocked
completion gateway, and a Flask app wired with independent components.
"""

import os
import tempfile

# Keep test log files out of the working tree
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "ecodata_chat_test_logs"))

from types import SimpleNamespace
from unittest.mock import Mock
from urllib.parse import urlparse

import pytest

from completion_gateway import CompletionGateway
from knowledge_loader import snapshot_from_dict
from rate_limiter import RateLimiter
from response_router import ResponseRouter
from server import create_app


TEST_KNOWLEDGE = {
    "services": [
        {
            "title": "Digital Literacy & Tech Training",
            "slug": "digital-literacy",
            "description": "Practical digital skills programmes for community groups, charities and individuals who are new to technology.",
        },
        {
            "title": "Data Analytics",
            "slug": "data-analytics",
            "shortDescription": "Dashboards and analysis that turn data into measurable impact.",
            "description": "We turn operational data into dashboards and impact reports.",
        },
        {
            "title": "Environmental Research",
            "slug": "environmental-research",
            "description": "Air quality monitoring, biodiversity surveys and local climate risk assessments published as open data.",
        },
    ],
    "impactMetrics": [
        {"title": "People trained", "value": "2,500", "unit": "people"},
        {"title": "Carbon avoided", "value": "120", "unit": "tonnes CO2e"},
    ],
    "faqs": [
        {
            "question": "How can I book a consultation?",
            "answer": "Book a free initial consultation at /book-appointment.",
            "category": "services",
        },
        {
            "question": "How can I support your work?",
            "answer": "Donate at /support.",
            "category": "support",
        },
    ],
    "themes": {
        "13": {"title": "Climate Action", "description": "Take urgent action to combat climate change and its impacts."},
        "4": {"title": "Quality Education", "description": "Ensure inclusive and equitable quality education for all."},
        "10": {"title": "Reduced Inequality", "description": "Reduce inequality within and among countries."},
    },
}


class FakeClock:
    """Manually advanced replacement for time.time()."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class StaticKnowledgeLoader:
    """Knowledge loader that always returns the same snapshot."""

    def __init__(self, snapshot):
        self.snapshot = snapshot
        self.calls = 0

    def load_snapshot(self):
        self.calls += 1
        return self.snapshot


class FlaskClientSession:
    """
    Adapts a Flask test client to the small slice of requests.Session the
    HTTP chat transport uses, so client-side code runs against the real app.
    """

    def __init__(self, test_client):
        self.test_client = test_client
        self.requests = []

    def post(self, url, json=None, timeout=None):
        self.requests.append(json)
        resp = self.test_client.post(urlparse(url).path, json=json)
        return SimpleNamespace(status_code=resp.status_code, json=resp.get_json)


@pytest.fixture
def snapshot():
    return snapshot_from_dict(TEST_KNOWLEDGE)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(max_requests=10, window_seconds=60, clock=clock)


@pytest.fixture
def mock_gateway():
    gateway = Mock(spec=CompletionGateway)
    gateway.complete.return_value = "Our carbon work focuses on measurable reductions."
    return gateway


@pytest.fixture
def router(mock_gateway):
    return ResponseRouter(mock_gateway)


@pytest.fixture
def knowledge_loader(snapshot):
    return StaticKnowledgeLoader(snapshot)


@pytest.fixture
def app(limiter, router, knowledge_loader):
    flask_app = create_app(limiter=limiter, router=router, knowledge_loader=knowledge_loader)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()
