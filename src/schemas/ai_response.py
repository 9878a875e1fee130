"""AI request/response schemas.

Common schemas shared across all Sage AI providers.
"""

from pydantic import BaseModel, ConfigDict, Field

from src.models.ai_provider import AIProviderType

DEFAULT_TEMPERATURE = 0.7


class AIRequest(BaseModel):
    """A single question sent to an AI provider."""

    question: str = Field(..., description="Fully assembled prompt text")
    book_title: str = Field(default="", description="Title of the book being read")
    book_author: str = Field(default="", description="Author of the book being read")
    passage_text: str = Field(default="", description="Selected passage, if any")
    context: str = Field(
        default="", description="System-level prompt; transmitted on every request"
    )
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    max_tokens: int = Field(
        default=0,
        ge=0,
        description="Response token cap; 0 uses the provider's configured maximum",
    )
    user_id: str | None = Field(
        default=None, description="Caller's user id, for downstream persistence only"
    )


class AIResponse(BaseModel):
    """Normalised response from any AI provider."""

    model_config = ConfigDict(frozen=True)

    answer: str = Field(..., description="Generated answer text")
    response_time: float = Field(
        default=0.0, ge=0.0, description="Wall-clock seconds for the call"
    )
    tokens_used: int = Field(
        default=0, ge=0, description="Provider-reported token usage (best effort)"
    )
    model: str = Field(..., description="Model that generated the answer")
    provider: AIProviderType = Field(..., description="AI provider used")
    confidence: float | None = Field(default=None)
    sources: list[str] = Field(default_factory=list)


class AICapabilities(BaseModel):
    """Static description of what a provider/model combination supports."""

    model_config = ConfigDict(frozen=True)

    supports_streaming: bool
    supports_conversations: bool
    supported_languages: list[str]
    max_tokens: int
    max_context_length: int
    supports_documents: bool
    supports_images: bool


class AIProviderInfo(BaseModel):
    """Display metadata about a provider, used by the UI and health payloads."""

    model_config = ConfigDict(frozen=True)

    name: str
    provider: AIProviderType
    model: str
    version: str
    description: str
    is_local: bool
    cost: str = ""
