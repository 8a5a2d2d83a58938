"""Pydantic schema of the inference service's /predict response."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field, StrictFloat, StrictStr

Probability = Annotated[StrictFloat, Field(ge=0.0, le=1.0)]


class PredictResponse(BaseModel):
    """Successful /predict body: ``[label, probability]`` pairs plus server time."""

    predictions: list[tuple[StrictStr, Probability]] = Field(min_length=1)
    processing_time: StrictFloat = Field(ge=0.0, description="Server-side inference time in seconds")
