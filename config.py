import logging
import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

ASSET_ROOT_FOLDER = os.getenv("ASSET_ROOT_FOLDER", "motoshop")

# Client totals further than this from the server total are logged as suspicious
PRICE_MISMATCH_TOLERANCE = float(os.getenv("PRICE_MISMATCH_TOLERANCE", "0.01"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 8000))


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
