# main.py
import logging
from asset_catalog.cli import app
from asset_catalog.config import setup_logging

def main():
    # Setup logging
    setup_logging()
    logger = logging.getLogger(__name__)
    
    try:
        app()
    except Exception as e:
        logger.error(f"Catalog command failed: {e}", exc_info=True)
        raise

if __name__ == "__main__":
    main()
