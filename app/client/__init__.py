from app.client.api import ApiClient
from app.client.cache import QueryCache
from app.client.cancellation import CancellationToken
from app.client.errors import (
    ApiError,
    ClientError,
    MissingIdentifierError,
    ResponseShapeError,
    TransportError,
)
from app.client.feed import FeedController
from app.client.network import NetworkController, RelationState
from app.client.profile import ProfileController

__all__ = [
    "ApiClient",
    "QueryCache",
    "CancellationToken",
    "ApiError",
    "ClientError",
    "MissingIdentifierError",
    "ResponseShapeError",
    "TransportError",
    "FeedController",
    "NetworkController",
    "RelationState",
    "ProfileController",
]
