import asyncio
import sys
from pathlib import Path

from fastapi import APIRouter, Depends
from loguru import logger

from kbsearch.api.deps import get_workspace
from kbsearch.config import get_settings
from kbsearch.core.workspace import Workspace
from kbsearch.models.system import HealthResponse, ScriptRunResult

VERSION = "0.1.0"

router = APIRouter(tags=["system"])


async def run_script(script_path: str, timeout: float) -> ScriptRunResult:
    """Run one local Python script and report what it printed."""
    try:
        proc = await asyncio.create_subprocess_exec(
            sys.executable,
            str(Path(script_path)),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.warning("Could not start {}: {}", script_path, e)
        return ScriptRunResult(success=False, error=str(e) or "Failed to execute Python script")

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning("{} timed out after {}s", script_path, timeout)
        return ScriptRunResult(success=False, error=f"Script timed out after {timeout:g}s")

    err = stderr.decode(errors="replace")
    if err:
        return ScriptRunResult(success=False, error=err)
    return ScriptRunResult(success=True, output=stdout.decode(errors="replace").strip())


@router.get("/api/system/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", version=VERSION)


@router.get("/api/state")
async def state(workspace: Workspace = Depends(get_workspace)):
    return workspace.snapshot()


@router.delete("/api/banner")
async def dismiss_banner(workspace: Workspace = Depends(get_workspace)):
    workspace.dismiss_banner()
    return {"banner": workspace.banner}


@router.post("/api/run-python", response_model=ScriptRunResult, response_model_exclude_none=True)
async def run_python():
    settings = get_settings()
    return await run_script(settings.demo_script_path, settings.demo_timeout)
