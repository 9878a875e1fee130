"""Sage orchestration service.

Turns a reader's question plus optional book/passage context into a
classical-education prompt, delegates it to the configured AI provider
and stamps the answer with wall-clock timing measured here.
"""

import time
from collections.abc import Mapping
from typing import Any

from src.config import Settings
from src.logging_config import get_logger
from src.models.ai_provider import AIProviderType
from src.schemas.ai_response import (
    AICapabilities,
    AIProviderInfo,
    AIRequest,
    AIResponse,
)
from src.services.ai_client import AIServiceError, BaseAIClient, create_ai_client

logger = get_logger(__name__)

# Balanced creativity for educational answers
SAGE_TEMPERATURE = 0.7
SAGE_MAX_TOKENS = 1000

SAGE_INSTRUCTIONS = (
    "Please provide an educational response that:\n"
    "1. Directly addresses the question\n"
    "2. Provides relevant classical context and historical background\n"
    "3. Makes connections to other classical works when appropriate\n"
    "4. Explains key concepts in an accessible way\n"
    "5. Encourages deeper thinking about the material\n"
)

SAGE_SYSTEM_PROMPT = """You are the Sage, an AI tutor specializing in classical education and great works of literature, philosophy, history, and thought. Your role is to help students understand and engage with classical texts from the Western, Eastern, Islamic, and other great traditions.

Your expertise includes:
- Ancient philosophy (Plato, Aristotle, Stoics, Epicureans, etc.)
- Classical literature (Homer, Virgil, Ovid, etc.)
- Medieval thought (Augustine, Aquinas, Averroes, Maimonides, etc.)
- Renaissance humanism and Enlightenment philosophy
- Eastern classics (Confucius, Lao Tzu, Buddhist texts, etc.)
- Islamic golden age scholarship
- Historical context and cultural connections

Your teaching approach:
- Ask Socratic questions to encourage critical thinking
- Provide clear explanations of difficult concepts
- Make connections between ideas and across time periods
- Encourage students to think deeply about timeless questions
- Use accessible language while maintaining scholarly accuracy
- Inspire curiosity and love of learning

Always be encouraging, patient, and supportive while maintaining academic rigor."""


class SageRequestError(AIServiceError):
    """A provider call made on behalf of the Sage failed.

    The provider's own error is kept as ``cause`` (and ``__cause__``) so
    callers can tell an unimplemented provider from a network failure.
    """

    def __init__(self, cause: AIServiceError) -> None:
        super().__init__(f"AI service request failed: {cause}")
        self.cause = cause


def build_sage_prompt(
    question: str,
    book_title: str = "",
    book_author: str = "",
    passage_text: str = "",
) -> str:
    """Assemble the per-question prompt.

    Order matters: book context line, quoted passage, the question itself,
    then the fixed five-point instruction list.
    """
    prompt = ""

    if book_title and book_author:
        prompt += f'Context: The user is reading "{book_title}" by {book_author}.\n\n'

    if passage_text:
        prompt += f'Relevant passage:\n"{passage_text}"\n\n'

    prompt += f"Question: {question}\n\n"
    prompt += SAGE_INSTRUCTIONS
    return prompt


class SageService:
    """Classical-education tutor backed by exactly one AI provider.

    Provider choice is a deployment decision: there is no per-call
    fallback and no retry here.
    """

    def __init__(self, client: BaseAIClient) -> None:
        self._client = client
        self.system_prompt = SAGE_SYSTEM_PROMPT

    @property
    def provider_type(self) -> AIProviderType:
        return self._client.provider_type

    async def ask(
        self,
        question: str,
        *,
        user_id: str | None = None,
        book_title: str = "",
        book_author: str = "",
        passage_text: str = "",
        context: str | None = None,
    ) -> AIResponse:
        """Ask the Sage a question.

        Args:
            question: The reader's question.
            user_id: Caller's user id, passed through for persistence.
            book_title: Title of the book being read.
            book_author: Author of the book being read.
            passage_text: Selected passage the question refers to.
            context: Extra caller context, appended below the system prompt.

        Returns:
            The provider's AIResponse with ``response_time`` measured here.

        Raises:
            SageRequestError: The provider failed; the original error is
                chained.
        """
        system_context = self.system_prompt
        if context:
            system_context = f"{self.system_prompt}\n\nAdditional context:\n{context}"

        request = AIRequest(
            question=build_sage_prompt(question, book_title, book_author, passage_text),
            book_title=book_title,
            book_author=book_author,
            passage_text=passage_text,
            context=system_context,
            temperature=SAGE_TEMPERATURE,
            max_tokens=SAGE_MAX_TOKENS,
            user_id=user_id,
        )

        start = time.perf_counter()
        try:
            response = await self._client.ask(request)
        except AIServiceError as e:
            logger.error(
                "Sage question failed",
                provider=self.provider_type.value,
                user_id=user_id,
                error=str(e),
            )
            raise SageRequestError(e) from e
        elapsed = time.perf_counter() - start

        logger.info(
            "Sage question answered",
            provider=response.provider.value,
            model=response.model,
            tokens_used=response.tokens_used,
            response_time=round(elapsed, 3),
            user_id=user_id,
        )
        # Self-reported provider timings are not trusted
        return response.model_copy(update={"response_time": elapsed})

    def get_capabilities(self) -> AICapabilities:
        return self._client.get_capabilities()

    def get_provider_info(self) -> AIProviderInfo:
        return self._client.get_provider_info()

    async def is_healthy(self) -> None:
        await self._client.is_healthy()

    async def aclose(self) -> None:
        await self._client.aclose()


def create_sage_service(
    provider: AIProviderType | str,
    config: Mapping[str, Any],
    **client_kwargs: Any,
) -> SageService:
    """Construct the Sage with a freshly built provider client.

    Raises:
        AIServiceError: The provider could not be constructed. The error
            keeps its original class with a "failed to create AI service"
            prefix.
    """
    try:
        client = create_ai_client(provider, config, **client_kwargs)
    except AIServiceError as e:
        raise type(e)(f"failed to create AI service: {e}") from e
    return SageService(client)


def build_provider_config(settings: Settings) -> dict[str, Any]:
    """Map application settings onto the option mapping for the selected provider."""
    provider = settings.sage_provider
    config: dict[str, Any] = {
        "max_tokens": settings.sage_max_tokens,
        "temperature": settings.sage_temperature,
        "health_generation_probe": settings.sage_health_generation_probe,
    }

    if provider == AIProviderType.OPENAI.value:
        config.update(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
        )
    elif provider == AIProviderType.ANTHROPIC.value:
        config.update(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
        )
    elif provider == AIProviderType.LOCAL.value:
        config.update(
            api_key=settings.local_api_key,
            model=settings.local_model,
            base_url=settings.local_base_url,
        )
    elif provider == AIProviderType.OLLAMA.value:
        config.update(
            model=settings.ollama_model,
            base_url=settings.ollama_base_url,
        )

    return config
