"""
Tests for response normalization and the AgentClient wire behaviour.
"""
import json

import httpx
import pytest

from kbsearch.core.agent import AgentClient, normalize_response
from kbsearch.core.errors import MalformedResponseError, ServerError, TransportError


@pytest.mark.unit
class TestNormalizeResponse:
    """Every accepted payload shape folds into one NormalizedAnswer."""

    def test_status_envelope(self, success_envelope):
        answer = normalize_response(success_envelope)

        assert answer.answer == "Refunds are allowed within 30 days."
        assert len(answer.sources) == 1
        assert answer.sources[0].document == "policy.pdf"
        assert answer.sources[0].page == 2
        assert answer.confidence == 0.92
        assert answer.follow_ups == ["What items are excluded?"]

    def test_success_wrapper_with_json_string(self, success_envelope):
        payload = {"success": True, "response": json.dumps(success_envelope)}

        answer = normalize_response(payload)

        assert answer.answer == "Refunds are allowed within 30 days."
        assert answer.confidence == 0.92

    def test_bare_result_object(self):
        answer = normalize_response({"answer": "Yes.", "sources": [{"title": "FAQ"}]})

        assert answer.answer == "Yes."
        assert answer.sources[0].title == "FAQ"

    def test_plain_text_response(self):
        answer = normalize_response({"success": True, "response": "Just text"})

        assert answer.answer == "Just text"
        assert answer.sources == []
        assert answer.confidence is None

    def test_missing_optional_fields(self):
        answer = normalize_response({"status": "success", "result": {"answer": "ok"}})

        assert answer.sources == []
        assert answer.follow_ups == []
        assert answer.confidence is None

    def test_missing_confidence_is_unknown_not_zero(self):
        answer = normalize_response({"answer": "ok"})

        assert answer.confidence is None
        assert answer.confidence != 0

    def test_zero_confidence_is_kept(self):
        answer = normalize_response({"answer": "ok", "confidence": 0})

        assert answer.confidence == 0.0

    def test_null_and_empty_sources_mean_no_sources(self):
        assert normalize_response({"answer": "a", "sources": None}).sources == []
        assert normalize_response({"answer": "a", "sources": []}).sources == []

    def test_out_of_range_confidence_is_unknown(self):
        assert normalize_response({"answer": "a", "confidence": 92}).confidence is None
        assert normalize_response({"answer": "a", "confidence": "0.5"}).confidence == 0.5
        assert normalize_response({"answer": "a", "confidence": "high"}).confidence is None

    def test_source_extra_fields_are_preserved(self):
        answer = normalize_response(
            {"answer": "a", "sources": [{"document": "d.pdf", "score": 0.7, "chunk_id": "c1"}]}
        )

        extras = answer.sources[0].model_extra
        assert extras["score"] == 0.7
        assert extras["chunk_id"] == "c1"

    def test_unparseable_source_field_is_dropped_not_fatal(self):
        answer = normalize_response({"answer": "a", "sources": [{"document": "d.pdf", "page": "ii"}]})

        assert answer.sources[0].document == "d.pdf"
        assert answer.sources[0].page is None

    def test_follow_ups_skip_non_strings(self):
        answer = normalize_response({"answer": "a", "follow_up_suggestions": ["Next?", 3, "  ", None]})

        assert answer.follow_ups == ["Next?"]

    def test_error_status_raises_server_error(self):
        with pytest.raises(ServerError) as exc:
            normalize_response({"status": "error", "result": {"answer": "Agent unavailable"}})

        assert exc.value.message == "Agent unavailable"

    def test_success_false_raises_server_error(self):
        with pytest.raises(ServerError) as exc:
            normalize_response({"success": False, "error": "Quota exceeded"})

        assert exc.value.message == "Quota exceeded"

    def test_missing_answer_is_malformed(self):
        with pytest.raises(MalformedResponseError):
            normalize_response({"status": "success", "result": {"sources": []}})

    def test_non_object_is_malformed(self):
        with pytest.raises(MalformedResponseError):
            normalize_response([1, 2, 3])


@pytest.mark.unit
@pytest.mark.asyncio
class TestAgentClient:
    """One request per query; failures come back as error results."""

    async def test_query_success(self, agent_client, agent_payloads, agent_requests, success_envelope):
        # Arrange
        agent_payloads.append(success_envelope)

        # Act
        result = await agent_client.query("What is the refund policy?", "agent-1")

        # Assert
        assert result.success
        assert result.value.answer == "Refunds are allowed within 30 days."
        assert len(agent_requests) == 1
        sent = json.loads(agent_requests[0].content)
        assert sent == {"message": "What is the refund policy?", "agent_id": "agent-1"}
        assert agent_requests[0].url.path == "/api/agent"

    async def test_http_error_uses_server_message(self, agent_client, agent_payloads):
        agent_payloads.append(httpx.Response(502, json={"detail": "Upstream model offline"}))

        result = await agent_client.query("q", "agent-1")

        assert not result.success
        assert isinstance(result.error, ServerError)
        assert result.error.status_code == 502
        assert result.error_message == "Upstream model offline"

    async def test_http_error_without_message_is_generic(self, agent_client, agent_payloads):
        agent_payloads.append(httpx.Response(500, text=""))

        result = await agent_client.query("q", "agent-1")

        assert result.error_message == "Request failed with status 500"

    async def test_network_failure_is_transport_error(self, agent_client, agent_payloads):
        agent_payloads.append(httpx.ConnectError("connection refused"))

        result = await agent_client.query("q", "agent-1")

        assert not result.success
        assert isinstance(result.error, TransportError)

    async def test_timeout_is_transport_error(self, agent_client, agent_payloads):
        agent_payloads.append(httpx.ReadTimeout("slow"))

        result = await agent_client.query("q", "agent-1")

        assert isinstance(result.error, TransportError)
        assert "timed out" in result.error_message

    async def test_non_json_body_is_malformed(self, agent_client, agent_payloads):
        agent_payloads.append(httpx.Response(200, text="<html>oops</html>"))

        result = await agent_client.query("q", "agent-1")

        assert isinstance(result.error, MalformedResponseError)

    async def test_application_error_status(self, agent_client, agent_payloads):
        agent_payloads.append({"status": "error", "error": "Agent is busy"})

        result = await agent_client.query("q", "agent-1")

        assert isinstance(result.error, ServerError)
        assert result.error_message == "Agent is busy"

    async def test_does_not_retry(self, agent_client, agent_payloads, agent_requests):
        agent_payloads.append(httpx.Response(503, json={"error": "down"}))

        await agent_client.query("q", "agent-1")

        assert len(agent_requests) == 1

    async def test_api_key_header(self, agent_payloads):
        seen = []

        def handler(request):
            seen.append(request.headers.get("x-api-key"))
            return httpx.Response(200, json={"answer": "ok"})

        client = AgentClient(
            "http://agent.test/",
            api_key="secret",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        result = await client.query("q", "agent-1")

        assert result.success
        assert seen == ["secret"]
