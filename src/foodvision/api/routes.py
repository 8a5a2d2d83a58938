"""API route definitions.

The routes only observe ``ClassificationSession`` and call its entry points;
classifications run in the background and clients poll ``/state``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Request, UploadFile, status

from foodvision.api.schemas import (
    ErrorResponse,
    ExampleInfo,
    ExamplesResponse,
    HealthResponse,
    SessionStateResponse,
)
from foodvision.client.payload import ImageSubmission

if TYPE_CHECKING:
    from foodvision.client.examples import ExampleCatalog
    from foodvision.client.session import ClassificationSession

router = APIRouter(prefix="/api/v1")

_BUSY_DETAIL = "A classification is already in progress"


def _get_session(request: Request) -> ClassificationSession:
    session: ClassificationSession = request.app.state.session
    return session


def _get_catalog(request: Request) -> ExampleCatalog:
    catalog: ExampleCatalog = request.app.state.catalog
    return catalog


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health and warmup status."""
    session = _get_session(request)
    return HealthResponse(status="ok", warmed=session.warmup.completed, loading=session.is_loading)


@router.get(
    "/state",
    response_model=SessionStateResponse,
    summary="Current session state",
)
async def get_state(request: Request) -> SessionStateResponse:
    return SessionStateResponse.from_session(_get_session(request))


@router.post(
    "/classify",
    response_model=SessionStateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
    summary="Classify an uploaded image",
)
async def classify_image(request: Request, file: UploadFile) -> SessionStateResponse:
    """Start classifying an uploaded image; poll ``/state`` for the outcome."""
    session = _get_session(request)
    if session.is_loading:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_BUSY_DETAIL)

    submission = ImageSubmission(
        content=await file.read(),
        declared_name=file.filename or "",
        mime_type=file.content_type or "",
    )
    if not session.start(submission):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_BUSY_DETAIL)
    return SessionStateResponse.from_session(session)


@router.get(
    "/examples",
    response_model=ExamplesResponse,
    summary="List example images",
)
async def list_examples(request: Request) -> ExamplesResponse:
    catalog = _get_catalog(request)
    return ExamplesResponse(examples=[ExampleInfo(name=name, url=catalog.url_for(name)) for name in catalog.names()])


@router.post(
    "/examples/{name}",
    response_model=SessionStateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    },
    summary="Classify a catalog example",
)
async def classify_example(request: Request, name: str) -> SessionStateResponse:
    """Fetch an example image and start classifying it."""
    session = _get_session(request)
    try:
        started = session.start_example(name)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown example: {name}") from None
    if not started:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_BUSY_DETAIL)
    return SessionStateResponse.from_session(session)


@router.post(
    "/clear",
    response_model=SessionStateResponse,
    summary="Clear the result or error",
)
async def clear(request: Request) -> SessionStateResponse:
    session = _get_session(request)
    session.clear()
    return SessionStateResponse.from_session(session)
