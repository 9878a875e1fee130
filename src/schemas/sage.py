"""Sage endpoint schemas.

Pydantic schemas for asking the Sage and inspecting its provider.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from src.models.ai_provider import AIProviderType
from src.schemas.ai_response import AIProviderInfo

MAX_QUESTION_LENGTH = 5000


class ErrorResponse(BaseModel):
    """Error response schema."""

    detail: str = Field(..., description="Error message")


class SageQuestionRequest(BaseModel):
    """Request schema for a question to the Sage."""

    question: str = Field(
        ...,
        min_length=1,
        max_length=MAX_QUESTION_LENGTH,
        description="The reader's question",
    )
    book_title: str = Field(default="", max_length=500)
    book_author: str = Field(default="", max_length=500)
    # Logged with the question; persisted by the external conversation store
    book_id: str | None = Field(default=None, description="Book the question is about")
    passage_text: str = Field(
        default="", max_length=20000, description="Selected passage, if any"
    )
    annotation_id: str | None = Field(
        default=None, description="Annotation the question was raised from"
    )
    context: str | None = Field(
        default=None,
        max_length=MAX_QUESTION_LENGTH,
        description="Additional context appended to the Sage's system prompt",
    )


class SageQuestionResponse(BaseModel):
    """Response schema for a Sage answer."""

    answer: str
    response_time: float = Field(..., description="Seconds spent waiting on the provider")
    model: str
    provider: AIProviderType
    tokens_used: int = 0
    sources: list[str] = Field(default_factory=list)
    confidence: float | None = None


class SageCapabilitiesResponse(BaseModel):
    """Capabilities of the configured provider plus its display metadata."""

    supports_streaming: bool
    supports_conversations: bool
    supported_languages: list[str]
    max_tokens: int
    max_context_length: int
    supports_documents: bool
    supports_images: bool
    provider_info: AIProviderInfo


class SageHealthResponse(BaseModel):
    """Healthy-provider payload."""

    status: str = "healthy"
    provider: str
    model: str
    is_local: bool
    timestamp: datetime
