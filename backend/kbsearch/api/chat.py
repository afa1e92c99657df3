from fastapi import APIRouter, Depends

from kbsearch.api.deps import get_workspace
from kbsearch.core.workspace import Workspace
from kbsearch.models.chat import ChatRequest, InputRequest, KeyRequest

router = APIRouter(prefix="/api/chat", tags=["chat"])


def _conversation(workspace: Workspace) -> dict:
    return workspace.conversation.state.model_dump(mode="json", by_alias=True)


@router.get("")
async def get_conversation(workspace: Workspace = Depends(get_workspace)):
    return _conversation(workspace)


@router.post("")
async def chat(body: ChatRequest, workspace: Workspace = Depends(get_workspace)):
    """Submit ``message``, or the input buffer when no message is given."""
    reply = await workspace.conversation.submit(body.message)
    return {"accepted": reply is not None, **_conversation(workspace)}


@router.put("/input")
async def set_input(body: InputRequest, workspace: Workspace = Depends(get_workspace)):
    workspace.conversation.set_input(body.value)
    return _conversation(workspace)


@router.post("/key")
async def key_press(body: KeyRequest, workspace: Workspace = Depends(get_workspace)):
    reply = await workspace.conversation.on_key(body.key, shift=body.shift)
    return {"accepted": reply is not None, **_conversation(workspace)}
