# src/moodvibe/agents/errors.py


class MoodVibeError(Exception):
    """Base class for errors raised by the recommendation pipeline."""


class UpstreamAuthError(MoodVibeError):
    """The Spotify client-credentials token exchange failed."""


class ModelInferenceError(MoodVibeError):
    """The language model returned something we could not use."""


class TrackSearchError(MoodVibeError):
    """The Spotify catalog search failed."""


class AuthenticationError(MoodVibeError):
    """Bad credentials, or an invalid/expired bearer token."""


class UserExistsError(MoodVibeError):
    """A user with this email is already registered."""
