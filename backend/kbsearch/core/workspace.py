from typing import Iterable

import httpx
from loguru import logger

from kbsearch.config import Settings
from kbsearch.core.agent import AgentClient
from kbsearch.core.conversation import ConversationController
from kbsearch.core.errors import Result
from kbsearch.core.knowledge import KnowledgeStore
from kbsearch.core.upload import UploadCoordinator
from kbsearch.models.documents import CandidateFile


class Workspace:
    """
    One conversation with one agent, next to one knowledge base's library.

    Also owns the dismissible banner shared by upload and delete failures.
    """

    def __init__(
        self,
        agent: AgentClient,
        store: KnowledgeStore,
        agent_id: str,
        kb_id: str,
        max_upload_bytes: int | None = None,
        allowed_upload_types: list[str] | None = None,
    ):
        self.agent_id = agent_id
        self.kb_id = kb_id
        self.store = store
        self.conversation = ConversationController(agent, agent_id)
        upload_kwargs = {}
        if max_upload_bytes is not None:
            upload_kwargs["max_bytes"] = max_upload_bytes
        if allowed_upload_types:
            upload_kwargs["allowed_types"] = allowed_upload_types
        self.uploads = UploadCoordinator(store, kb_id, **upload_kwargs)
        self._delete_error: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> "Workspace":
        agent = AgentClient(
            settings.agent_base_url,
            query_path=settings.agent_query_path,
            api_key=settings.agent_api_key,
            client=client,
            timeout=settings.request_timeout,
        )
        store = KnowledgeStore(
            settings.rag_base_url,
            api_key=settings.rag_api_key,
            client=client,
            timeout=settings.request_timeout,
            upload_timeout=settings.upload_timeout,
        )
        return cls(
            agent,
            store,
            agent_id=settings.agent_id,
            kb_id=settings.rag_id,
            max_upload_bytes=settings.max_upload_bytes,
            allowed_upload_types=settings.allowed_upload_types,
        )

    @property
    def banner(self) -> str | None:
        return self._delete_error or self.uploads.error

    def dismiss_banner(self) -> None:
        self._delete_error = None
        self.uploads.dismiss_error()

    async def start(self) -> None:
        """Initial library load; the local list is never trusted across restarts."""
        await self.store.fetch(self.kb_id)

    async def upload_document(self, file: CandidateFile) -> Result[None]:
        # A new upload attempt replaces whatever the banner was showing
        self._delete_error = None
        return await self.uploads.upload(file)

    async def drop_documents(self, files: Iterable[CandidateFile]) -> Result[None] | None:
        files = list(files)
        if files:
            self._delete_error = None
        return await self.uploads.drop(files)

    async def delete_document(self, file_name: str) -> Result[None]:
        self.dismiss_banner()
        result = await self.store.remove(self.kb_id, [file_name])
        if not result.success:
            self._delete_error = result.error_message or "Delete failed"
            logger.info("[kb] reconciling {} after failed delete", self.kb_id)
            await self.store.fetch(self.kb_id)
        return result

    def snapshot(self) -> dict:
        return {
            "agentId": self.agent_id,
            "conversation": self.conversation.state.model_dump(mode="json", by_alias=True),
            "library": self.store.snapshot(self.kb_id).model_dump(mode="json", by_alias=True),
            "upload": {
                **self.uploads.state.model_dump(mode="json", by_alias=True),
                "dragging": self.uploads.dragging,
            },
            "banner": self.banner,
        }
