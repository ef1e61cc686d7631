"""
Shared LLM client with built-in retry logic for Groq API rate limits.
The correction dispatcher uses ``invoke_with_retry`` as its default
service call; retries live here, never in the engine itself.
"""
import logging
import asyncio
from langchain_groq import ChatGroq
from app.core.config import settings
from app.core.errors import CorrectionServiceError

logger = logging.getLogger(__name__)

llm = ChatGroq(
    api_key=settings.GROQ_API_KEY,
    model_name=settings.LLM_MODEL,
    temperature=settings.LLM_TEMPERATURE
)


def _is_rate_limit(error: Exception) -> bool:
    error_str = str(error).lower()
    return "429" in error_str or "rate" in error_str or "limit" in error_str


async def invoke_with_retry(prompt: str, max_retries: int = settings.LLM_MAX_RETRIES) -> str:
    """Invoke the LLM with automatic retry on rate-limit (429) errors.

    Uses exponential backoff: 2s, 4s, 8s between retries.
    Returns the response content string.
    """
    for attempt in range(max_retries + 1):
        try:
            response = await llm.ainvoke(prompt)
            return response.content
        except Exception as e:
            is_rate_limit = _is_rate_limit(e)

            if is_rate_limit and attempt < max_retries:
                wait_time = 2 ** (attempt + 1)
                logger.warning(f"Groq rate limit hit (attempt {attempt + 1}/{max_retries}). Retrying in {wait_time}s...")
                await asyncio.sleep(wait_time)
                continue

            if is_rate_limit:
                logger.error(f"Groq rate limit exceeded after {max_retries} retries: {e}")
                raise CorrectionServiceError(f"rate limit exceeded after {max_retries} retries") from e

            logger.error(f"LLM invocation error: {e}")
            raise CorrectionServiceError(f"LLM invocation failed: {e}") from e
