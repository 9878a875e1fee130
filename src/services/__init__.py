# Business Logic Services
from src.services.ai_client import (
    AIConfigurationError,
    AIProviderNotImplementedError,
    AIResponseError,
    AIServiceError,
    AITransportError,
    BaseAIClient,
    UnsupportedProviderError,
    create_ai_client,
)
from src.services.sage import (
    SageRequestError,
    SageService,
    build_provider_config,
    create_sage_service,
)

__all__ = [
    "AIConfigurationError",
    "AIProviderNotImplementedError",
    "AIResponseError",
    "AIServiceError",
    "AITransportError",
    "BaseAIClient",
    "UnsupportedProviderError",
    "create_ai_client",
    "SageRequestError",
    "SageService",
    "build_provider_config",
    "create_sage_service",
]
