"""
UploadCoordinator: validate -> upload -> refresh, one file at a time.

    idle ─► validating ─┬─► failed(reason)
                        └─► uploading(name) ─┬─► succeeded   (after the refresh)
                                             └─► failed(reason)

succeeded and failed accept a new upload just like idle. Drag-and-drop
highlighting is a reference count so nested drag targets do not flicker.
"""
from typing import Iterable

from loguru import logger

from kbsearch.core.errors import KnowledgeSearchError, Result, ValidationError
from kbsearch.core.knowledge import KnowledgeStore
from kbsearch.models.documents import CandidateFile, UploadPhase, UploadState

PDF_MIME_TYPE = "application/pdf"
DEFAULT_MAX_BYTES = 50 * 1024 * 1024


class UploadInProgressError(ValidationError):
    default_message = "An upload is already in progress"


class UploadCoordinator:
    def __init__(
        self,
        store: KnowledgeStore,
        kb_id: str,
        max_bytes: int = DEFAULT_MAX_BYTES,
        allowed_types: Iterable[str] = (PDF_MIME_TYPE,),
    ):
        self._store = store
        self.kb_id = kb_id
        self.max_bytes = max_bytes
        self.allowed_types = frozenset(allowed_types)
        self.state = UploadState()
        self.error: str | None = None
        self.drag_counter = 0
        self.dragging = False

    @property
    def uploading_file(self) -> str | None:
        return self.state.file_name if self.state.is_uploading else None

    def validate(self, file: CandidateFile) -> ValidationError | None:
        if file.content_type not in self.allowed_types:
            return ValidationError("Only PDF files are supported")
        if file.size > self.max_bytes:
            return ValidationError(f"File size must be under {self.max_bytes // (1024 * 1024)}MB")
        return None

    def dismiss_error(self) -> None:
        self.error = None

    async def upload(self, file: CandidateFile) -> Result[None]:
        if self.state.is_busy:
            logger.warning("[upload] rejected {}: {} in progress", file.name, self.state.file_name)
            return Result.fail(UploadInProgressError())

        self.state = UploadState(phase=UploadPhase.VALIDATING, file_name=file.name)
        invalid = self.validate(file)
        if invalid is not None:
            return self._fail(file.name, invalid)

        self.state = UploadState(phase=UploadPhase.UPLOADING, file_name=file.name)
        self.error = None
        try:
            result = await self._store.upload(self.kb_id, file)
            if not result.success:
                return self._fail(file.name, result.error or KnowledgeSearchError("Upload failed"))
            # The refresh completes before the uploading indicator goes away
            await self._store.fetch(self.kb_id)
            self.state = UploadState(phase=UploadPhase.SUCCEEDED, file_name=file.name)
            return result
        except Exception:
            logger.exception("[upload] unexpected error uploading {}", file.name)
            return self._fail(file.name, KnowledgeSearchError("Upload failed"))
        finally:
            if self.state.is_busy:
                self.state = UploadState(phase=UploadPhase.FAILED, file_name=file.name, reason="Upload failed")
                self.error = "Upload failed"

    def _fail(self, file_name: str, error: KnowledgeSearchError) -> Result[None]:
        logger.warning("[upload] {} failed: {}", file_name, error.message)
        self.state = UploadState(phase=UploadPhase.FAILED, file_name=file_name, reason=error.message)
        self.error = error.message
        return Result.fail(error)

    async def select(self, files: Iterable[CandidateFile]) -> Result[None] | None:
        """Browse-button selection: only the first file is used."""
        first = next(iter(files), None)
        if first is None:
            return None
        return await self.upload(first)

    # ── Drag and drop ──────────────────────────────────────────────────────────

    def drag_enter(self, has_items: bool = True) -> None:
        self.drag_counter += 1
        if has_items:
            self.dragging = True

    def drag_leave(self) -> None:
        self.drag_counter = max(0, self.drag_counter - 1)
        if self.drag_counter == 0:
            self.dragging = False

    async def drop(self, files: Iterable[CandidateFile]) -> Result[None] | None:
        self.drag_counter = 0
        self.dragging = False
        return await self.select(files)
