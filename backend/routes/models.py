"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class ExecuteBody(BaseModel):
    script: str
    timeout_ms: int | None = Field(None, gt=0)
    memory_mb: int | None = Field(None, gt=0)


class CommandBody(BaseModel):
    line: str
    user_id: str | None = None


class FalBody(BaseModel):
    """fal.ai proxy request: an action name plus that action's parameters."""

    model_config = ConfigDict(extra="allow")

    action: str
