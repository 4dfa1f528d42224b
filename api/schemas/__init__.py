from api.schemas.common import ERROR_RESPONSES, Document, ErrorBody, ErrorResponse, ListResponse
from api.schemas.indexer import HealthResponse, ReputationSummaryResponse, StatusResponse

__all__ = [
    "ERROR_RESPONSES",
    "Document",
    "ErrorBody",
    "ErrorResponse",
    "HealthResponse",
    "ListResponse",
    "ReputationSummaryResponse",
    "StatusResponse",
]
