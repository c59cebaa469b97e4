"""AI client, generation backends, and their failure taxonomy."""

from .backends import GenerationBackend, GenerationRequest, OpenAIBackend, RelayBackend
from .client import AIClient, ClientSettings
from .errors import (
    CredentialInvalidError,
    CredentialMissingError,
    GenerationError,
    TransportError,
    UpstreamError,
    describe_failure,
)

__all__ = [
    "AIClient",
    "ClientSettings",
    "CredentialInvalidError",
    "CredentialMissingError",
    "GenerationBackend",
    "GenerationError",
    "GenerationRequest",
    "OpenAIBackend",
    "RelayBackend",
    "TransportError",
    "UpstreamError",
    "describe_failure",
]
