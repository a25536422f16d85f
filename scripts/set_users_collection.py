import logging
import os
import time
from typing import Tuple

import pymongo
from dotenv import load_dotenv
from pymongo import MongoClient

from moodvibe.app.users import UserStore


logger = logging.getLogger("moodvibe.set_users_collection")


def configure_logging_from_env() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def load_env_variables() -> None:
    load_dotenv(".env")
    configure_logging_from_env()
    logger.info("Environment loaded")


def connect_to_mongo(
    db_name: str, collection_name: str
) -> Tuple[MongoClient, pymongo.collection.Collection]:
    mongo_uri = os.getenv("MONGO_URI")
    if not mongo_uri:
        raise ValueError("MONGO_URI not found in environment variables.")
    client = MongoClient(mongo_uri, serverSelectionTimeoutMS=5000)
    client.admin.command("ping")
    db = client[db_name]
    collection = db[collection_name]
    logger.info("Connected to MongoDB")
    return client, collection


def ensure_user_indexes(collection: pymongo.collection.Collection) -> None:
    max_retries = 3
    attempt = 0
    while True:
        try:
            UserStore(collection).ensure_indexes()
            break
        except (pymongo.errors.AutoReconnect, pymongo.errors.NetworkTimeout) as e:
            attempt += 1
            if attempt >= max_retries:
                raise
            wait = 2**attempt
            logger.warning(
                f"Transient error (attempt {attempt}/{max_retries}): {e}. Retrying in {wait}s..."
            )
            time.sleep(wait)


def main() -> None:
    load_env_variables()
    DB_NAME = os.getenv("DB_NAME")
    USERS_COLLECTION_NAME = os.getenv("MONGO_USERS_COLLECTION", "users")

    client = None
    try:
        client, collection = connect_to_mongo(DB_NAME, USERS_COLLECTION_NAME)
        ensure_user_indexes(collection)
        logger.info(f"Users collection '{USERS_COLLECTION_NAME}' is ready")
    finally:
        if client:
            client.close()
            logger.info("MongoDB connection closed")


if __name__ == "__main__":
    main()
