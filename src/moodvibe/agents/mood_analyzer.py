# src/moodvibe/agents/mood_analyzer.py
import json
import logging

import openai
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import LLM_MODEL, get_openai_client
from .errors import ModelInferenceError
from .models import GENRE_COUNT, MoodAnalysisResult

logger = logging.getLogger(__name__)

FALLBACK_GENRES = ["pop", "indie", "electronic", "rock", "alternative"]
MAX_ATTEMPTS = 3

# Errors worth another attempt before falling back.
TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)

SYSTEM_PROMPT = f"""You are a music expert specializing in mood analysis.
Analyze the given mood/feeling and provide {GENRE_COUNT} music genres or keywords that best match this mood.
Consider the emotional tone, energy level, and musical preferences that would complement this mood.
Respond with JSON in this exact format:
{{"genres": ["genre1", "genre2", "genre3", "genre4", "genre5"]}}"""

RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "mood_analysis",
        "schema": {
            "type": "object",
            "properties": {
                "genres": {
                    "type": "array",
                    "items": {"type": "string"},
                    "minItems": GENRE_COUNT,
                    "maxItems": GENRE_COUNT,
                }
            },
            "required": ["genres"],
            "additionalProperties": False,
        },
    },
}


def fallback_result() -> MoodAnalysisResult:
    return MoodAnalysisResult(genres=list(FALLBACK_GENRES))


@retry(
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    wait=wait_exponential(multiplier=0.2, max=2),
    stop=stop_after_attempt(MAX_ATTEMPTS),
    reraise=True,
)
def _request_genres(text: str, client) -> str:
    response = client.chat.completions.create(
        model=LLM_MODEL,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": text},
        ],
        response_format=RESPONSE_FORMAT,
        temperature=0.0,
    )
    return response.choices[0].message.content


def parse_mood_analysis(raw_json: str) -> MoodAnalysisResult:
    """
    Parses the model's JSON reply into a MoodAnalysisResult.

    Raises:
        ModelInferenceError: If the reply is empty, not JSON, or does not
            contain exactly five non-empty genres.
    """
    if not raw_json:
        raise ModelInferenceError("Empty response from language model")
    try:
        return MoodAnalysisResult.model_validate(json.loads(raw_json))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ModelInferenceError(f"Unusable mood analysis payload: {e}") from e


def analyze_mood(text: str, client=None) -> MoodAnalysisResult:
    """
    Turns a free-text mood into five genre keywords using the language model.

    Transient upstream errors are retried a bounded number of times. Any
    failure that remains is logged and answered with the fixed fallback
    genres, so this function never raises.

    Args:
        text (str): The user's mood description.
        client: An OpenAI-compatible client. Defaults to the shared client.

    Returns:
        MoodAnalysisResult: Exactly five genres.
    """
    try:
        client = client or get_openai_client()
        return parse_mood_analysis(_request_genres(text, client))
    except ModelInferenceError as e:
        logger.warning(f"Mood analysis parse failure, using fallback genres: {e}")
    except openai.OpenAIError as e:
        logger.warning(
            f"Mood analysis upstream failure ({type(e).__name__}), using fallback genres: {e}"
        )
    except Exception as e:
        logger.error(f"Unexpected mood analysis error, using fallback genres: {e}", exc_info=True)
    return fallback_result()
