"""
AgentClient: one request per question to the external answering agent.

The agent has been seen answering in several shapes:

    {"status": "success", "result": {"answer": ..., "sources": [...], ...}}
    {"success": true, "response": <envelope or result, maybe a JSON string>}
    {"answer": ..., "sources": [...], ...}

normalize_response() folds all of them into a NormalizedAnswer.
"""
import json
import math
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from kbsearch.core.errors import (
    KnowledgeSearchError,
    MalformedResponseError,
    Result,
    ServerError,
)
from kbsearch.core.http import ServiceClient, server_message
from kbsearch.models.chat import NormalizedAnswer, Source

MAX_UNWRAP_DEPTH = 4
FOLLOW_UP_KEYS = ("follow_up_suggestions", "followUpSuggestions", "follow_ups", "followUps")


def _unwrap(payload: Any, depth: int = 0) -> dict:
    """Peel envelopes off until the result object with the answer is reached."""
    if depth > MAX_UNWRAP_DEPTH:
        raise MalformedResponseError("The agent response was nested too deeply")

    if isinstance(payload, str):
        try:
            decoded = json.loads(payload)
        except ValueError:
            # Plain text reply
            return {"answer": payload}
        if isinstance(decoded, (dict, str)):
            return _unwrap(decoded, depth + 1)
        return {"answer": payload}

    if not isinstance(payload, dict):
        raise MalformedResponseError()

    if payload.get("success") is False:
        raise ServerError(server_message(payload) or "The agent could not answer this question")

    status = payload.get("status")
    if status is not None and str(status).lower() != "success":
        nested = payload.get("result")
        message = server_message(payload)
        if message is None and isinstance(nested, dict) and isinstance(nested.get("answer"), str):
            message = nested["answer"]
        raise ServerError(message or "The agent could not answer this question")

    if "answer" in payload:
        return payload

    for key in ("result", "response"):
        if payload.get(key) is not None:
            return _unwrap(payload[key], depth + 1)

    return payload


def _coerce_source(raw: Any) -> Source | None:
    if isinstance(raw, str):
        return Source(content=raw) if raw.strip() else None
    if not isinstance(raw, dict):
        return None
    try:
        return Source.model_validate(raw)
    except PydanticValidationError as e:
        # Keep the citation, drop only the fields that failed to parse
        bad = {err["loc"][0] for err in e.errors() if err["loc"]}
        logger.debug("[agent] dropping unparseable source fields {}", sorted(bad))
        return Source.model_validate({k: v for k, v in raw.items() if k not in bad})


def _normalize_sources(raw: Any) -> list[Source]:
    # absent, null and [] all mean "no sources"; a non-list is treated as absent
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("[agent] ignoring non-list sources of type {}", type(raw).__name__)
        return []
    return [s for s in (_coerce_source(item) for item in raw) if s is not None]


def _normalize_confidence(raw: Any) -> float | None:
    """
    absent / null        -> None (unknown)
    number in [0, 1]     -> that number
    numeric string       -> parsed, same rules
    anything else        -> None, with a warning
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        logger.warning("[agent] ignoring boolean confidence")
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("[agent] ignoring non-numeric confidence {!r}", raw)
        return None
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        logger.warning("[agent] ignoring out-of-range confidence {!r}", raw)
        return None
    return value


def _normalize_follow_ups(result: dict) -> list[str]:
    raw = next((result[k] for k in FOLLOW_UP_KEYS if k in result), None)
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("[agent] ignoring non-list follow-ups")
        return []
    return [item.strip() for item in raw if isinstance(item, str) and item.strip()]


def normalize_response(payload: Any) -> NormalizedAnswer:
    """
    Turn any accepted agent payload into a NormalizedAnswer.

    Raises ServerError when the payload reports failure, and
    MalformedResponseError when no answer can be found in it.
    """
    result = _unwrap(payload)

    answer = result.get("answer")
    if answer is None:
        raise MalformedResponseError("The agent response did not include an answer")
    if not isinstance(answer, str):
        if isinstance(answer, (dict, list)):
            raise MalformedResponseError("The agent answer was not text")
        answer = str(answer)

    return NormalizedAnswer(
        answer=answer,
        sources=_normalize_sources(result.get("sources")),
        confidence=_normalize_confidence(result.get("confidence")),
        follow_ups=_normalize_follow_ups(result),
    )


class AgentClient(ServiceClient):
    """Stateless adapter to the agent endpoint. Never retries, never raises."""

    service_name = "agent"

    def __init__(
        self,
        base_url: str,
        query_path: str = "/api/agent",
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
    ):
        super().__init__(base_url, api_key=api_key, client=client, timeout=timeout)
        self.query_path = query_path

    async def query(self, text: str, agent_id: str) -> Result[NormalizedAnswer]:
        try:
            payload = await self._request(
                "POST",
                self.query_path,
                json={"message": text, "agent_id": agent_id},
            )
            answer = normalize_response(payload)
        except KnowledgeSearchError as e:
            logger.warning("[agent] query to {} failed: {}", agent_id, e.message)
            return Result.fail(e)
        except Exception as e:
            logger.exception("[agent] unexpected error querying {}", agent_id)
            return Result.fail(KnowledgeSearchError(f"Failed to get response from agent: {e}"))

        logger.info(
            "[agent] answered {!r}: {} sources, confidence={}",
            text[:60], len(answer.sources), answer.confidence,
        )
        return Result.ok(answer)
