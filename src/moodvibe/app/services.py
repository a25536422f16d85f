import logging
from typing import Callable, Optional

from fastapi import HTTPException, status

from ..agents.errors import MoodVibeError
from ..agents.models import MoodAnalysisResult
from ..agents.spotify import SpotifyService
from .schemas import AuthUser, RecommendationsResponse

logger = logging.getLogger(__name__)

RECOMMENDATIONS_FAILED = "Failed to get recommendations. Please try again."


def get_song_recommendations(
    mood: str,
    analyze: Callable[[str], MoodAnalysisResult],
    spotify: SpotifyService,
    user: Optional[AuthUser] = None,
) -> RecommendationsResponse:
    """
    Service layer function to get recommendations.

    Analyzes the mood, searches the catalog with the detected genres and
    shapes the response. Upstream search failures become a generic 500;
    their detail only goes to the log.
    """
    mood_analysis = analyze(mood)

    try:
        songs = spotify.search_tracks(mood_analysis.genres)
    except MoodVibeError as e:
        logger.error(f"Recommendation pipeline failed for genres {mood_analysis.genres}: {e}", exc_info=True)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, RECOMMENDATIONS_FAILED)
    except Exception as e:
        logger.error(f"Unexpected error searching tracks for genres {mood_analysis.genres}: {e}", exc_info=True)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, RECOMMENDATIONS_FAILED)

    return RecommendationsResponse(
        detected_mood=", ".join(mood_analysis.genres),
        songs=songs,
        user=user,
    )
