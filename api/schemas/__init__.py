# Schemas module
from .requests import StartExtractionRequest
from .responses import (
    StartExtractionResponse,
    ExtractionSummary,
    ExtractionDetail,
    QuotaResponse,
    MessageResponse,
    ErrorResponse
)

__all__ = [
    "StartExtractionRequest",
    "StartExtractionResponse",
    "ExtractionSummary",
    "ExtractionDetail",
    "QuotaResponse",
    "MessageResponse",
    "ErrorResponse"
]
