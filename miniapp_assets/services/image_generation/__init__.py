"""
Image generation backends with failure classification and retry.
"""
from .base import (
    BackendKind,
    Dimensions,
    GenerationFailure,
    GenerationRequest,
    GenerationResult,
    GenerationSuccess,
    ImageGenerationError,
    ImageGenerationProvider,
    ImageGenerationResponse,
    Slot,
    detect_media_type,
)
from .factory import ImageProviderFactory
from .failure_types import (
    ErrorClassifier,
    RetryAfter,
    RetryVerdict,
    Stop,
    classify_failure,
    parse_diagnostic,
)
from .runner import RetryOutcome, execute_with_retry, wait

__all__ = [
    "BackendKind",
    "Dimensions",
    "GenerationFailure",
    "GenerationRequest",
    "GenerationResult",
    "GenerationSuccess",
    "ImageGenerationError",
    "ImageGenerationProvider",
    "ImageGenerationResponse",
    "Slot",
    "detect_media_type",
    "ImageProviderFactory",
    "ErrorClassifier",
    "RetryAfter",
    "RetryVerdict",
    "Stop",
    "classify_failure",
    "parse_diagnostic",
    "RetryOutcome",
    "execute_with_retry",
    "wait",
]
