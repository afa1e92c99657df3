"""
KnowledgeStore: local mirror of one knowledge base's document list.

The server is the source of truth. fetch() replaces the mirror wholesale,
upload() only reports whether the file was accepted (indexing continues
server-side), and remove() drops names locally once the server confirms.

Overlapping fetches are allowed. Each one is numbered when it starts; its
response is applied only if no fetch numbered after it has already been
applied, so the list always reflects the most recently completed fetch and a
slow stale response never overwrites a fresher one. Deletes do not take part
in that numbering: names confirmed deleted while a fetch is in flight are
filtered out of that fetch's response instead.
"""
from typing import Any, Iterable

import httpx
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from kbsearch.core.errors import (
    KnowledgeSearchError,
    MalformedResponseError,
    Result,
    ServerError,
)
from kbsearch.core.http import ServiceClient, application_error
from kbsearch.models.documents import CandidateFile, Document, DocumentsSnapshot


def parse_documents(payload: Any) -> list[Document]:
    """Accept a bare list or a ``{"documents": [...]}`` wrapper."""
    if isinstance(payload, dict):
        message = application_error(payload)
        if message:
            raise ServerError(message)
        payload = payload.get("documents")
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise MalformedResponseError("The document list had an unexpected shape")
    try:
        return [Document.model_validate(item) for item in payload]
    except PydanticValidationError as e:
        raise MalformedResponseError("The document list contained an invalid entry") from e


class KnowledgeStore(ServiceClient):
    service_name = "kb"

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
        upload_timeout: float = 300.0,
    ):
        super().__init__(base_url, api_key=api_key, client=client, timeout=timeout)
        self._upload_timeout = upload_timeout
        self._documents: list[Document] = []
        self._knowledge_base_id: str | None = None
        self._issued = 0
        self._applied = 0
        self._in_flight = 0
        # fetch seq -> names deleted while that fetch was in flight
        self._removed_during: dict[int, set[str]] = {}
        self.error: str | None = None

    # ── Read side ──────────────────────────────────────────────────────────────

    @property
    def documents(self) -> tuple[Document, ...]:
        return tuple(self._documents)

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    def snapshot(self, kb_id: str) -> DocumentsSnapshot:
        documents = self.documents if self._knowledge_base_id == kb_id else ()
        return DocumentsSnapshot(
            knowledge_base_id=kb_id,
            documents=documents,
            loading=self.loading,
            error=self.error,
        )

    # ── Operations ─────────────────────────────────────────────────────────────

    async def fetch(self, kb_id: str) -> Result[list[Document]]:
        self._issued += 1
        seq = self._issued
        self._in_flight += 1
        self._removed_during[seq] = set()
        try:
            payload = await self._request("GET", f"/rag/{kb_id}/documents")
            documents = parse_documents(payload)
        except KnowledgeSearchError as e:
            if seq > self._applied:
                self.error = e.message
            logger.warning("[kb] fetch #{} for {} failed: {}", seq, kb_id, e.message)
            return Result.fail(e)
        finally:
            self._in_flight -= 1
            removed = self._removed_during.pop(seq, set())

        # The server may have answered before a delete that completed meanwhile
        if removed:
            documents = [d for d in documents if d.file_name not in removed]

        if seq < self._applied:
            logger.debug("[kb] discarding stale fetch #{} (already applied #{})", seq, self._applied)
            return Result.ok(documents)

        self._applied = seq
        self._documents = documents
        self._knowledge_base_id = kb_id
        self.error = None
        logger.info("[kb] fetch #{} for {}: {} documents", seq, kb_id, len(documents))
        return Result.ok(documents)

    async def upload(self, kb_id: str, file: CandidateFile) -> Result[None]:
        try:
            payload = await self._request(
                "POST",
                f"/rag/{kb_id}/upload",
                files={"file": (file.name, file.data, file.content_type or "application/octet-stream")},
                timeout=self._upload_timeout,
            )
            message = application_error(payload)
            if message:
                raise ServerError(message)
        except KnowledgeSearchError as e:
            logger.warning("[kb] upload of {} to {} failed: {}", file.name, kb_id, e.message)
            return Result.fail(e)

        logger.info("[kb] upload accepted: {} ({} bytes) -> {}", file.name, file.size, kb_id)
        return Result.ok()

    async def remove(self, kb_id: str, file_names: Iterable[str]) -> Result[None]:
        names = list(file_names)
        if not names:
            return Result.ok()
        try:
            payload = await self._request(
                "POST",
                f"/rag/{kb_id}/documents/delete",
                json={"fileNames": names},
            )
            message = application_error(payload)
            if message:
                raise ServerError(message)
        except KnowledgeSearchError as e:
            # Some names may be gone already; only a fetch can tell which.
            self.error = e.message
            logger.warning("[kb] delete of {} from {} failed: {}", names, kb_id, e.message)
            return Result.fail(e)

        removed = set(names)
        for pending in self._removed_during.values():
            pending.update(removed)
        if self._knowledge_base_id == kb_id:
            self._documents = [d for d in self._documents if d.file_name not in removed]
        logger.info("[kb] deleted {} from {}", names, kb_id)
        return Result.ok()
