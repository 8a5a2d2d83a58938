"""Pydantic response schemas for the FoodVision presentation API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from foodvision.client.formatting import format_probability
from foodvision.client.session import Error, Loading, Success

if TYPE_CHECKING:
    from foodvision.client.interpreter import ClassificationLabelScore
    from foodvision.client.session import ClassificationSession


class Prediction(BaseModel):
    """A single label with its probability and display percentage."""

    label: str
    probability: float = Field(ge=0.0, le=1.0)
    percentage: str = Field(description="Probability formatted for display, e.g. '87.3%'")

    @classmethod
    def from_score(cls, score: ClassificationLabelScore) -> Prediction:
        return cls(label=score.label, probability=score.probability, percentage=format_probability(score.probability))


class ClassificationView(BaseModel):
    """Top prediction, the next four, and the server processing time."""

    top: Prediction
    others: list[Prediction]
    processing_time: str = Field(description="Server processing time in seconds, 3 decimals")
    total_predictions: int


class SessionStateResponse(BaseModel):
    """Everything the UI needs to render the current session state."""

    status: Literal["idle", "loading", "success", "error"]
    loading_message: str | None = None
    preview: str | None = Field(default=None, description="Data URL or example asset URL")
    result: ClassificationView | None = None
    error: str | None = None

    @classmethod
    def from_session(cls, session: ClassificationSession) -> SessionStateResponse:
        state = session.state
        response = cls(status=state.status, preview=state.preview)
        if isinstance(state, Loading):
            response.loading_message = session.loading_message
        elif isinstance(state, Success):
            result = state.result
            response.result = ClassificationView(
                top=Prediction.from_score(result.top),
                others=[Prediction.from_score(score) for score in result.others],
                processing_time=result.processing_time_display,
                total_predictions=len(result.predictions),
            )
        elif isinstance(state, Error):
            response.error = state.message
        return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    warmed: bool
    loading: bool


class ExampleInfo(BaseModel):
    """A catalog example and the URL its bytes are fetched from."""

    name: str
    url: str


class ExamplesResponse(BaseModel):
    """Response for the examples listing endpoint."""

    examples: list[ExampleInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
