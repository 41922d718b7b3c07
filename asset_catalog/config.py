# asset_catalog/config.py
import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Base directory of the project
BASE_DIR = Path(__file__).resolve().parent.parent

MIB = 1024 * 1024


class Config:
    """Configuration settings for the catalog engine"""

    # Database settings
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    DB_POOL_MIN_SIZE: int = int(os.getenv("DB_POOL_MIN_SIZE", "2"))
    DB_POOL_MAX_SIZE: int = int(os.getenv("DB_POOL_MAX_SIZE", "10"))

    # Object store settings
    AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1")
    AWS_S3_BUCKET: str = os.getenv("AWS_S3_BUCKET", "")
    AWS_ACCESS_KEY_ID: str = os.getenv("AWS_ACCESS_KEY_ID", "")
    AWS_SECRET_ACCESS_KEY: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    AWS_S3_ENDPOINT_URL: str = os.getenv("AWS_S3_ENDPOINT_URL", "")
    CDN_DOMAIN: str = os.getenv("CDN_DOMAIN", "")
    S3_CONNECT_TIMEOUT: float = float(os.getenv("S3_CONNECT_TIMEOUT", "30"))
    S3_READ_TIMEOUT: float = float(os.getenv("S3_READ_TIMEOUT", "60"))

    # Upload settings
    UPLOAD_MAX_RETRIES: int = int(os.getenv("UPLOAD_MAX_RETRIES", "3"))
    UPLOAD_BACKOFF_BASE: float = float(os.getenv("UPLOAD_BACKOFF_BASE", "2"))
    MULTIPART_THRESHOLD: int = int(os.getenv("MULTIPART_THRESHOLD", str(5 * MIB)))
    MULTIPART_PART_SIZE: int = int(os.getenv("MULTIPART_PART_SIZE", str(5 * MIB)))
    MAX_FILE_SIZE: int = int(os.getenv("MAX_FILE_SIZE", str(500 * MIB)))
    MODEL_EXTENSION: str = os.getenv("MODEL_EXTENSION", ".glb")

    # Catalog settings
    IDENTIFIER_RETRIES: int = int(os.getenv("IDENTIFIER_RETRIES", "1"))
    IMPORT_CONCURRENCY: int = int(os.getenv("IMPORT_CONCURRENCY", "4"))
    DEFAULT_PAGE_SIZE: int = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))

    # Other settings
    TIMEZONE: str = os.getenv("TZ", "UTC")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Paths
    LOG_DIR = Path(os.getenv("LOG_DIR", str(BASE_DIR / "logs")))

    @classmethod
    def validate(cls):
        """Fail fast when required settings are missing"""
        if not cls.DATABASE_URL:
            raise ValueError("No DATABASE_URL set in environment")
        if not cls.AWS_S3_BUCKET:
            raise ValueError("No AWS_S3_BUCKET set in environment")
        if cls.MULTIPART_PART_SIZE < 5 * MIB:
            raise ValueError("MULTIPART_PART_SIZE must be at least 5 MiB")


def setup_logging():
    """Configure logging settings"""
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    Config.LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = Config.LOG_DIR / "catalog.log"

    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format=log_format,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )
    # botocore is chatty at INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
