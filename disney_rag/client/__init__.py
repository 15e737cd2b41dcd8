"""Transport layer — wire models, error taxonomy, and the httpx client."""

from disney_rag.client.errors import ErrorKind, RagError, StorageFailure, message_for
from disney_rag.client.models import Citation, QueryResult, ServiceAvailability, TierState
from disney_rag.client.transport import RagClient

__all__ = [
    "Citation",
    "ErrorKind",
    "QueryResult",
    "RagClient",
    "RagError",
    "ServiceAvailability",
    "StorageFailure",
    "TierState",
    "message_for",
]
