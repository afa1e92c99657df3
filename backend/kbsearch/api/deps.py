from fastapi import HTTPException, Request

from kbsearch.core.workspace import Workspace


def get_workspace(request: Request) -> Workspace:
    workspace = getattr(request.app.state, "workspace", None)
    if workspace is None:
        raise HTTPException(status_code=503, detail="Workspace not ready")
    return workspace
