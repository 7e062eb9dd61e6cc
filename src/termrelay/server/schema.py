"""Request and response schemas for the HTTP API.

Field names follow the browser client's camelCase JSON.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class StartSessionRequest(BaseModel):
    path: str = Field(..., min_length=1, description="Working directory for the session")


class InputRequest(BaseModel):
    """Keystrokes for the process.

    ``enter`` appends a carriage return; ``data`` may be omitted when only
    Enter is pressed.
    """

    data: Optional[str] = None
    enter: bool = False


class ResizeRequest(BaseModel):
    cols: Optional[int] = None
    rows: Optional[int] = None


class StatusResponse(BaseModel):
    status: str = "ok"


class SessionStarted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    cwd: str
    created_at: int = Field(..., alias="createdAt")


class SessionInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    cwd: str
    created_at: int = Field(..., alias="createdAt")
    last_output_at: int = Field(..., alias="lastOutputAt")


class SessionList(BaseModel):
    sessions: List[SessionInfo]


class ErrorResponse(BaseModel):
    error: str
    code: str
    details: Optional[Any] = None
