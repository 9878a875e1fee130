# Provider Models
from src.models.ai_provider import LOCAL_PROVIDER_TYPES, AIProviderType

__all__ = [
    "AIProviderType",
    "LOCAL_PROVIDER_TYPES",
]
