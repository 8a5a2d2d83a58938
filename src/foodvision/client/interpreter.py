"""Turn a raw /predict body into a ``ClassificationResult``."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from foodvision.client.errors import ParseError
from foodvision.client.formatting import format_processing_time
from foodvision.client.schemas import PredictResponse

DISPLAYED_PREDICTIONS = 5


@dataclass(frozen=True)
class ClassificationLabelScore:
    """A single label with its probability (0.0-1.0)."""

    label: str
    probability: float


@dataclass(frozen=True)
class ClassificationResult:
    """Predictions in server order (descending probability) and server time.

    All predictions are kept; presentation only shows the first five.
    """

    predictions: tuple[ClassificationLabelScore, ...]
    processing_time_seconds: float

    @property
    def top(self) -> ClassificationLabelScore:
        return self.predictions[0]

    @property
    def others(self) -> tuple[ClassificationLabelScore, ...]:
        """The runner-up predictions shown below the top one."""
        return self.predictions[1:DISPLAYED_PREDICTIONS]

    @property
    def processing_time_display(self) -> str:
        return format_processing_time(self.processing_time_seconds)


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "body"
    return f"{location}: {first['msg']}"


def interpret(raw_body: bytes | str | Mapping[str, Any]) -> ClassificationResult:
    """Validate a response body and reshape it, keeping server ordering.

    Raises:
        ParseError: If the body is not JSON, ``predictions`` is missing, empty or
            not a list of ``[label, probability]`` pairs, or ``processing_time``
            is missing or not numeric.
    """
    try:
        if isinstance(raw_body, (bytes, str)):
            parsed = PredictResponse.model_validate_json(raw_body)
        else:
            parsed = PredictResponse.model_validate(raw_body)
    except ValidationError as exc:
        raise ParseError(_describe(exc)) from exc

    return ClassificationResult(
        predictions=tuple(
            ClassificationLabelScore(label=label, probability=probability) for label, probability in parsed.predictions
        ),
        processing_time_seconds=parsed.processing_time,
    )
