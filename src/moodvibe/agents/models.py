from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

GENRE_COUNT = 5


class MoodAnalysisResult(BaseModel):
    genres: List[str] = Field(..., min_length=GENRE_COUNT, max_length=GENRE_COUNT)

    @field_validator("genres")
    def genres_must_not_be_blank(cls, v: List[str]):
        cleaned = [g.strip() for g in v]
        if not all(cleaned):
            raise ValueError("genres must be non-empty strings")
        return cleaned


class Song(BaseModel):
    """A catalog track projected to the shape the web client renders."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    artist: str
    album: str
    spotify_url: str
    image_url: Optional[str] = None
    preview_url: Optional[str] = None
