from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse
from loguru import logger

from kbsearch.api.deps import get_workspace
from kbsearch.core.errors import Result
from kbsearch.core.workspace import Workspace
from kbsearch.models.documents import CandidateFile

router = APIRouter(prefix="/api/documents", tags=["documents"])


def _library(workspace: Workspace) -> dict:
    return workspace.store.snapshot(workspace.kb_id).model_dump(mode="json", by_alias=True)


def _upload_state(workspace: Workspace) -> dict:
    uploads = workspace.uploads
    return {
        **uploads.state.model_dump(mode="json", by_alias=True),
        "dragging": uploads.dragging,
        "dragCounter": uploads.drag_counter,
        "banner": workspace.banner,
    }


async def _read_candidate(file: UploadFile) -> CandidateFile:
    body = await file.read()
    return CandidateFile(
        name=file.filename or "",
        content_type=file.content_type or "",
        data=body,
    )


def _upload_response(workspace: Workspace, result: Result[None] | None) -> dict:
    # None: nothing was dropped, so nothing was uploaded
    return {
        "success": result is not None and result.success,
        "error": result.error_message if result is not None else None,
        "upload": _upload_state(workspace),
        "library": _library(workspace),
    }


# ── Routes: literal paths before parameterized ones ─────────────────────────────

@router.get("")
async def list_documents(workspace: Workspace = Depends(get_workspace)):
    return _library(workspace)


@router.post("/refresh")
async def refresh_documents(workspace: Workspace = Depends(get_workspace)):
    await workspace.store.fetch(workspace.kb_id)
    return _library(workspace)


@router.get("/upload")
async def get_upload_state(workspace: Workspace = Depends(get_workspace)):
    return _upload_state(workspace)


@router.post("/upload")
async def upload_document(
    file: UploadFile = File(...),
    workspace: Workspace = Depends(get_workspace),
):
    try:
        candidate = await _read_candidate(file)
    except Exception as e:
        logger.warning("Failed to read upload body for {}: {}", file.filename, e)
        return JSONResponse(status_code=400, content={"detail": "Failed to read uploaded file."})

    result = await workspace.upload_document(candidate)
    return _upload_response(workspace, result)


@router.post("/drop")
async def drop_documents(
    files: list[UploadFile] | None = File(None),
    workspace: Workspace = Depends(get_workspace),
):
    """Files released over the drop zone; ends the drag and uploads the first one."""
    files = files or []
    try:
        # Only the first file is uploaded
        candidates = [await _read_candidate(f) for f in files[:1]]
    except Exception as e:
        logger.warning("Failed to read dropped file {}: {}", files[0].filename, e)
        await workspace.drop_documents([])
        return JSONResponse(status_code=400, content={"detail": "Failed to read dropped file."})

    result = await workspace.drop_documents(candidates)
    return _upload_response(workspace, result)


@router.post("/drag/enter")
async def drag_enter(has_items: bool = True, workspace: Workspace = Depends(get_workspace)):
    workspace.uploads.drag_enter(has_items=has_items)
    return _upload_state(workspace)


@router.post("/drag/leave")
async def drag_leave(workspace: Workspace = Depends(get_workspace)):
    workspace.uploads.drag_leave()
    return _upload_state(workspace)


@router.delete("/{file_name}")
async def delete_document(file_name: str, workspace: Workspace = Depends(get_workspace)):
    result = await workspace.delete_document(file_name)
    return {
        "success": result.success,
        "error": result.error_message,
        "library": _library(workspace),
    }
