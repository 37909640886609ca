from .errors import (
    APIError,
    BadRequest,
    ConfigurationError,
    NotFound,
    ProviderError,
    TransportError,
    Unauthorized,
    UnsupportedProvider,
    UpstreamError,
)
from .logging import request_id_var, setup_logging, target_id_var

__all__ = [
    "APIError",
    "BadRequest",
    "ConfigurationError",
    "NotFound",
    "ProviderError",
    "TransportError",
    "Unauthorized",
    "UnsupportedProvider",
    "UpstreamError",
    "request_id_var",
    "setup_logging",
    "target_id_var",
]
