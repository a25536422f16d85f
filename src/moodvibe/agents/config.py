# src/moodvibe/agents/config.py
import logging
import os

from dotenv import load_dotenv
from openai import AzureOpenAI, OpenAI
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure

load_dotenv(".env")

logger = logging.getLogger(__name__)

# --- Upstream timeouts (seconds) ---
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10"))

LLM_CONFIG = {
    "config_list": [{
        "model": os.getenv("AZURE_DEPLOYMENT") or os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        "api_key": os.getenv("AZURE_OPENAI_API_KEY") or os.getenv("OPENAI_API_KEY"),
        "api_type": "azure" if os.getenv("AZURE_OPENAI_ENDPOINT") else "openai",
        "base_url": os.getenv("AZURE_OPENAI_ENDPOINT"),
        "api_version": os.getenv("AZURE_API_VERSION"),
    }],
    "temperature": 0.0,
}


def configure_logging_from_env() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


_db_client = None

def get_db_client():
    """
    Returns a shared instance of the MongoDB database client.
    Initializes the connection on the first call.
    """
    global _db_client
    if _db_client is None:
        mongo_uri = os.getenv("MONGO_URI")
        db_name = os.getenv("DB_NAME")
        if not mongo_uri or not db_name:
            raise ValueError("MONGO_URI or DB_NAME not found in environment variables.")

        logger.info("Initializing shared MongoDB client for the first time...")
        try:
            client = MongoClient(mongo_uri, serverSelectionTimeoutMS=5000)
            _db_client = client[db_name]
            logger.info("MongoDB connection successful.")
        except ConnectionFailure as e:
            raise ConnectionFailure(f"Could not connect to MongoDB: {e}")

    return _db_client


_openai_client = None

def get_openai_client():
    """Returns a shared OpenAI (or AzureOpenAI) client instance based on config."""
    global _openai_client
    if _openai_client is None:
        config = LLM_CONFIG["config_list"][0]
        if config["api_type"] == "azure":
            _openai_client = AzureOpenAI(
                azure_endpoint=config["base_url"],
                api_key=config["api_key"],
                api_version=config["api_version"],
                timeout=UPSTREAM_TIMEOUT_SECONDS,
                max_retries=0,
            )
        else:
            _openai_client = OpenAI(
                api_key=config["api_key"],
                timeout=UPSTREAM_TIMEOUT_SECONDS,
                max_retries=0,
            )
    return _openai_client


# --- Model & Catalog Settings ---
LLM_MODEL = LLM_CONFIG["config_list"][0]["model"]
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET", "")
SPOTIFY_MARKET = os.getenv("SPOTIFY_MARKET", "US")

# --- Auth Settings ---
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-moodvibe-dev-secret")
JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "7"))
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REDIRECT_URI = os.getenv(
    "GOOGLE_REDIRECT_URI", "http://127.0.0.1:8000/api/auth/google/callback"
)
RECOMMENDATIONS_AUTH = os.getenv("RECOMMENDATIONS_AUTH", "optional").lower()

# --- Collection Names ---
USERS_COLLECTION = os.getenv("MONGO_USERS_COLLECTION", "users")
