"""
Shared fixtures: fake collaborators and mock-transport HTTP clients.
"""
import json
from typing import Any, Callable

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from kbsearch.core.agent import AgentClient
from kbsearch.core.errors import Result
from kbsearch.core.knowledge import KnowledgeStore
from kbsearch.models.chat import NormalizedAnswer, Source
from kbsearch.models.documents import CandidateFile

AGENT_URL = "http://agent.test"
RAG_URL = "http://rag.test"
KB_ID = "kb-1"
AGENT_ID = "agent-1"
MIB = 1024 * 1024


class FakeRAGService:
    """
    In-memory stand-in for the external document service, served through
    httpx.MockTransport. Records every request it sees.
    """

    def __init__(self):
        self.files: dict[str, int] = {}
        self.requests: list[httpx.Request] = []
        self.fail_next: dict[str, httpx.Response] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        kind = path.rsplit("/", 1)[-1]
        if kind in self.fail_next:
            return self.fail_next.pop(kind)

        if request.method == "GET" and path.endswith("/documents"):
            return httpx.Response(
                200,
                json=[{"fileName": name, "chunkCount": chunks} for name, chunks in self.files.items()],
            )
        if request.method == "POST" and path.endswith("/upload"):
            body = request.read()
            name = _multipart_filename(body)
            self.files[name] = 3
            return httpx.Response(200, json={"success": True})
        if request.method == "POST" and path.endswith("/documents/delete"):
            names = json.loads(request.content)["fileNames"]
            for name in names:
                self.files.pop(name, None)
            return httpx.Response(200, json={"success": True})
        return httpx.Response(404, json={"error": "not found"})

    def count(self, method: str, suffix: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path.endswith(suffix))


def _multipart_filename(body: bytes) -> str:
    marker = b'filename="'
    start = body.index(marker) + len(marker)
    return body[start:body.index(b'"', start)].decode()


def mock_client(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def rag_service() -> FakeRAGService:
    return FakeRAGService()


@pytest.fixture
def store(rag_service: FakeRAGService) -> KnowledgeStore:
    return KnowledgeStore(RAG_URL, client=mock_client(rag_service.handler))


@pytest.fixture
def agent_payloads() -> list:
    """Queue of payloads the mock agent endpoint will answer with, in order."""
    return []


@pytest.fixture
def agent_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def agent_client(agent_payloads: list, agent_requests: list) -> AgentClient:
    def handler(request: httpx.Request) -> httpx.Response:
        agent_requests.append(request)
        payload = agent_payloads.pop(0)
        if isinstance(payload, httpx.Response):
            return payload
        if isinstance(payload, Exception):
            raise payload
        return httpx.Response(200, json=payload)

    return AgentClient(AGENT_URL, client=mock_client(handler))


@pytest.fixture
def fake_agent() -> MagicMock:
    """Agent double whose query() answers with a fixed NormalizedAnswer."""
    agent = MagicMock()
    agent.query = AsyncMock(
        return_value=Result.ok(
            NormalizedAnswer(
                answer="Refunds are allowed within 30 days.",
                sources=[Source(document="policy.pdf", page=2)],
                confidence=0.92,
                follow_ups=["What items are excluded?"],
            )
        )
    )
    return agent


@pytest.fixture
def success_envelope() -> dict:
    return {
        "status": "success",
        "result": {
            "answer": "Refunds are allowed within 30 days.",
            "sources": [{"document": "policy.pdf", "page": 2}],
            "confidence": 0.92,
            "follow_up_suggestions": ["What items are excluded?"],
        },
    }


@pytest.fixture
def pdf_file() -> CandidateFile:
    return CandidateFile(name="contract.pdf", content_type="application/pdf", data=b"%PDF-1.7\n" + b"0" * (2 * MIB))
