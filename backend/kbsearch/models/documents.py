from enum import Enum

from pydantic import AliasChoices, BaseModel, Field, model_validator

from kbsearch.models.common import CamelModel


class Document(CamelModel):
    file_name: str = Field(
        serialization_alias="fileName",
        validation_alias=AliasChoices("fileName", "file_name", "filename"),
    )
    chunk_count: int | None = Field(
        default=None,
        serialization_alias="chunkCount",
        validation_alias=AliasChoices("chunkCount", "chunk_count", "documentCount"),
    )


class UploadPhase(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class UploadState(CamelModel):
    phase: UploadPhase = UploadPhase.IDLE
    file_name: str | None = None
    reason: str | None = None

    @property
    def is_busy(self) -> bool:
        return self.phase in (UploadPhase.VALIDATING, UploadPhase.UPLOADING)

    @property
    def is_uploading(self) -> bool:
        return self.phase is UploadPhase.UPLOADING


class CandidateFile(BaseModel):
    """A file picked or dropped by the user, before validation."""

    name: str
    content_type: str = ""
    data: bytes = b""
    size: int = -1

    @model_validator(mode="after")
    def _fill_size(self) -> "CandidateFile":
        if self.size < 0:
            self.size = len(self.data)
        return self


class DocumentsSnapshot(CamelModel):
    knowledge_base_id: str
    documents: tuple[Document, ...] = ()
    loading: bool = False
    error: str | None = None
