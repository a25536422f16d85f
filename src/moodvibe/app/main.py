import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Cookie, Depends, FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..agents.config import RECOMMENDATIONS_AUTH, configure_logging_from_env
from ..agents.errors import AuthenticationError, UserExistsError
from ..agents.mood_analyzer import analyze_mood
from ..agents.spotify import get_spotify_service
from . import google_oauth, schemas, services
from .auth import AuthService, auth_gate, get_auth_service, require_user

logger = logging.getLogger(__name__)

AUTH_FAILED_REDIRECT = "/?error=auth_failed"


def get_mood_analyzer():
    return analyze_mood


auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


@auth_router.post("/register", response_model=schemas.AuthResponse)
def register(
    request: schemas.RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    try:
        user, token = auth_service.register_user(request.email, request.name, request.password)
    except UserExistsError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))
    return schemas.AuthResponse(message="Registration successful", user=user, token=token)


@auth_router.post("/login", response_model=schemas.AuthResponse)
def login(
    request: schemas.LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    try:
        user, token = auth_service.login_user(request.email, request.password)
    except AuthenticationError as e:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, str(e))
    return schemas.AuthResponse(message="Login successful", user=user, token=token)


@auth_router.get("/me", response_model=schemas.MeResponse)
def me(user: schemas.AuthUser = Depends(require_user)):
    return schemas.MeResponse(user=user)


@auth_router.post("/logout", response_model=schemas.MessageResponse)
def logout():
    # Tokens are stateless; the client just drops its copy.
    return schemas.MessageResponse(message="Logged out successfully")


@auth_router.get("/google")
def google_login():
    if not google_oauth.is_configured():
        logger.error("Google login requested but GOOGLE_CLIENT_ID/SECRET are not set")
        return RedirectResponse(AUTH_FAILED_REDIRECT, status_code=302)
    state = google_oauth.new_state()
    response = RedirectResponse(google_oauth.build_authorization_url(state), status_code=302)
    response.set_cookie(
        google_oauth.STATE_COOKIE,
        state,
        max_age=google_oauth.STATE_MAX_AGE_SECONDS,
        httponly=True,
        samesite="lax",
    )
    return response


def auth_failed_redirect() -> RedirectResponse:
    response = RedirectResponse(AUTH_FAILED_REDIRECT, status_code=302)
    response.delete_cookie(google_oauth.STATE_COOKIE)
    return response


@auth_router.get("/google/callback")
def google_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    oauth_state: Optional[str] = Cookie(None),
    auth_service: AuthService = Depends(get_auth_service),
):
    if not google_oauth.state_matches(state, oauth_state):
        logger.error("Google callback state does not match the login cookie")
        return auth_failed_redirect()
    if not code:
        return auth_failed_redirect()
    try:
        profile = google_oauth.fetch_profile(code)
        user, token = auth_service.handle_google_user(profile)
    except (AuthenticationError, UserExistsError, PyMongoError) as e:
        logger.error(f"Google callback error: {e}")
        return auth_failed_redirect()

    query = urlencode({"token": token, "user": user.model_dump_json()})
    response = RedirectResponse(f"/?{query}", status_code=302)
    response.delete_cookie(google_oauth.STATE_COOKIE)
    return response


def create_app(recommendations_auth: str = RECOMMENDATIONS_AUTH) -> FastAPI:
    """
    Builds the API. `recommendations_auth` picks how the recommendation
    endpoint treats callers: "required", "optional" or "none".
    """
    configure_logging_from_env()
    current_user = auth_gate(recommendations_auth)

    app = FastAPI(title="MoodVibe API")

    @app.exception_handler(RequestValidationError)
    def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Invalid request", "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StarletteHTTPException)
    def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.get("/health")
    def health_check():
        """Health check endpoint for Docker containers."""
        return {"status": "healthy", "service": "moodvibe"}

    @app.post(
        "/api/recommendations",
        response_model=schemas.RecommendationsResponse,
        response_model_exclude_none=True,
    )
    def create_recommendations(
        request: schemas.MoodRequest,
        user: Optional[schemas.AuthUser] = Depends(current_user),
        analyze=Depends(get_mood_analyzer),
        spotify=Depends(get_spotify_service),
    ):
        """
        Endpoint to get music recommendations based on a free-text mood.
        """
        return services.get_song_recommendations(request.mood, analyze, spotify, user)

    app.include_router(auth_router)
    logger.info(f"MoodVibe API ready (recommendations auth: {recommendations_auth})")
    return app


app = create_app()
