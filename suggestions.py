import functools
import hashlib
from functools import lru_cache
from typing import Optional

import openai
import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

import schemas
from errors import UpstreamError
from settings import get_settings

logger = structlog.get_logger(__name__)

# --- Application Info for OpenRouter ---
APP_NAME = "Creative Hub"
APP_URL = "https://github.com/creative-hub/creative-hub"

# --- Model Configuration ---
MODEL_CONFIG = {
    "cover_images": {
        "temperature": 0.7,
        "top_p": 1,
        "max_tokens": 1024,
    },
}


class CoverImageSuggestions(BaseModel):
    image_urls: list[str] = Field(
        default_factory=list,
        description="Suggested image URLs that could serve as the project's cover image.",
    )


@lru_cache()
def get_client() -> AsyncOpenAI:
    """OpenAI client pointed at OpenRouter; built on first use."""
    settings = get_settings()
    if not settings.openrouter_api_key:
        logger.error("OPENROUTER_API_KEY not found in environment variables or .env file.")
        raise UpstreamError("Image suggestions are not configured.")
    return AsyncOpenAI(
        base_url="https://openrouter.ai/api/v1",
        api_key=settings.openrouter_api_key,
        default_headers={
            "HTTP-Referer": APP_URL,
            "X-Title": APP_NAME,
        },
    )


async def call_llm(
    system_prompt: str,
    user_prompt: str,
    model_config: dict,
    response_model: type[BaseModel],
) -> Optional[BaseModel]:
    """Call the LLM and parse its reply into ``response_model``."""

    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]

    response = await get_client().chat.completions.parse(
        model=get_settings().suggestion_model,
        messages=messages,
        response_format=response_model,
        **model_config,
    )
    if not response.choices:
        logger.warning("LLM reply had no choices", model=get_settings().suggestion_model)
        raise UpstreamError("An error occurred while fetching image suggestions.")
    return response.choices[0].message.parsed


# Simple response cache keyed by prompt; identical descriptions are not re-billed
_SUGGESTION_CACHE: dict[str, list[str]] = {}


def cache_suggestions(func):
    """Cache non-empty suggestion lists per description."""

    @functools.wraps(func)
    async def wrapper(description: str) -> list[str]:
        cache_key = hashlib.md5(f"{func.__name__}|{description}".encode()).hexdigest()
        if cache_key in _SUGGESTION_CACHE:
            logger.info("Using cached suggestions", hash=cache_key[:8])
            return list(_SUGGESTION_CACHE[cache_key])

        result = await func(description)
        if result:
            _SUGGESTION_CACHE[cache_key] = list(result)
        return result

    return wrapper


@cache_suggestions
async def _fetch_cover_images(description: str) -> list[str]:
    system_prompt = (
        "You are a creative assistant helping users find cover images for their projects. "
        "Based on the project description provided, suggest 3 relevant image URLs that "
        "could be used as a cover image. Return only JSON matching the schema."
    )
    user_prompt = f"Project Description: {description}"

    try:
        parsed = await call_llm(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            model_config=MODEL_CONFIG["cover_images"],
            response_model=CoverImageSuggestions,
        )
    except openai.OpenAIError as exc:
        logger.warning("Cover image suggestion failed", exc=str(exc))
        raise UpstreamError("An error occurred while fetching image suggestions.") from exc

    if parsed is None:
        logger.warning("LLM returned no parsable suggestions")
        return []
    return [url.strip() for url in parsed.image_urls if url and url.strip()]


async def suggest_cover_images(description: str) -> list[str]:
    """Suggest cover image URLs for a project description.

    Returns an empty list when the service has nothing to offer; raises
    ``ValidationError`` for descriptions under 20 characters and
    ``UpstreamError`` when the service cannot be reached.
    """
    request = schemas.validate_form(schemas.CoverImageRequest, {"description": description})
    urls = await _fetch_cover_images(request.description)
    logger.info("Cover image suggestions", count=len(urls))
    return urls
