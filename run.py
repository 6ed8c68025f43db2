"""
formguard - Entry point
Run this file to start the web app.
"""
import sys
import os
import logging
from logging.handlers import RotatingFileHandler

from config import settings


def setup_logging(level: str = "INFO"):
    """Configure logging to file and console."""
    # Create logs directory
    logs_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs")
    os.makedirs(logs_dir, exist_ok=True)
    
    log_file = os.path.join(logs_dir, "formguard.log")
    
    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    
    # File handler with rotation (5MB, keep 5 files)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    
    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    
    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    
    # Reduce noise from libraries
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('uvicorn').setLevel(logging.INFO)
    
    return logging.getLogger('formguard')


def main():
    """Main entry point."""
    logger = setup_logging("DEBUG" if settings.debug else settings.log_level)
    logger.info("=" * 50)
    logger.info("Starting formguard")
    logger.info("=" * 50)

    import uvicorn
    from formguard.app import create_app

    app = create_app(settings)
    logger.info(f"  - Session store: {settings.session_store}")
    logger.info(f"  - Token rotation: {'on' if settings.csrf_rotate_on_verify else 'off'}")
    logger.info(f"  - Listening on http://{settings.host}:{settings.port}")

    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    if len(sys.argv) > 1:
        print("Usage: python run.py")
        print("  Configure via environment variables or .env")
        sys.exit(1)
    main()
