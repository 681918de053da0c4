"""REST API routes for the policyvault backend.

Routes receive dependencies (coordinator, repos) via app.state. Internal
failures are logged server-side and reported to the client as a generic
500 without exception detail.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from policyvault.db.models import AggregatedPolicy, PolicyInfo, User
from policyvault.errors import (
    IngestionError,
    InvalidScheduleError,
    NoFileError,
    NotFoundError,
    PersistenceError,
    UnsupportedFormatError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

INTERNAL_ERROR = "Internal server error"


# -- Request/Response models --------------------------------------------------

class UploadResponse(BaseModel):
    message: str
    row_count: int


class SearchResponse(BaseModel):
    message: str
    user: User
    policy_info: list[PolicyInfo]


class AggregatedPolicyResponse(BaseModel):
    message: str
    result: list[AggregatedPolicy]


class ScheduleMessageRequest(BaseModel):
    message: str | None = None
    day: str
    time: str


class ScheduleMessageResponse(BaseModel):
    message: str
    scheduled_time: datetime


# -- Helper to get state from app ---------------------------------------------

def _get_state(request: Request) -> Any:
    """Get app state (repos, coordinator, settings)."""
    return request.app.state


# -- Upload endpoint ----------------------------------------------------------

@router.post("/uploadfile", response_model=UploadResponse)
async def upload_file(
    request: Request,
    file: UploadFile | None = File(None),
) -> dict[str, Any]:
    """Ingest an uploaded XLSX/CSV file into the six record collections."""
    state = _get_state(request)

    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    content = await file.read()
    try:
        summary = await state.coordinator.ingest(content, file.filename)
    except NoFileError:
        raise HTTPException(status_code=400, detail="No file uploaded")
    except UnsupportedFormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except (IngestionError, PersistenceError) as exc:
        logger.error("Error uploading file [%s]: %s", exc.error_code, exc)
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)
    except Exception:
        logger.exception("Error uploading file")
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

    return {
        "message": "File uploaded and data saved successfully",
        "row_count": summary.row_count,
    }


# -- Query endpoints ----------------------------------------------------------

@router.get("/search/{username}", response_model=SearchResponse)
async def search_user(username: str, request: Request) -> dict[str, Any]:
    """Find a user by first name and return their policies."""
    state = _get_state(request)
    try:
        user, policies = state.policy_repo.search_by_username(username)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    except Exception:
        logger.exception("Error searching for user")
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

    return {"message": "Fetch Successfully", "user": user, "policy_info": policies}


@router.get("/aggregated-policy", response_model=AggregatedPolicyResponse)
async def aggregated_policy(request: Request) -> dict[str, Any]:
    """Policy count and total amount per user."""
    state = _get_state(request)
    try:
        result = state.policy_repo.aggregate_by_user()
    except Exception:
        logger.exception("Error aggregating policies")
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

    return {"message": "Fetch Successfully", "result": result}


# -- Scheduled messages -------------------------------------------------------

@router.post("/schedule-message", response_model=ScheduleMessageResponse)
async def schedule_message(body: ScheduleMessageRequest, request: Request) -> dict[str, Any]:
    """Store a message for a given day and time. Nothing delivers it."""
    state = _get_state(request)
    try:
        stored = state.message_repo.schedule(body.message, body.day, body.time)
    except InvalidScheduleError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception:
        logger.exception("Error scheduling message")
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

    return {
        "message": "Message scheduled and inserted",
        "scheduled_time": stored["scheduled_time"],
    }
