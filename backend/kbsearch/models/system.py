from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    version: str


class ScriptRunResult(BaseModel):
    success: bool
    output: str | None = None
    error: str | None = None
