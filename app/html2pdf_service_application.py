import argparse
import logging
import os
from datetime import datetime
from pathlib import Path

import uvicorn

from app import pdf_controller  # type: ignore
from app.service_config import get_service_config

DEFAULT_LOG_DIR = "/opt/html2pdf/logs"

# Third-party loggers that do not inherit the root level on their own
THIRD_PARTY_LOGGERS = ["playwright", "httpx", "httpcore", "pypdf"]


def setup_logging() -> Path:
    """
    Configure logging for the HTML to PDF service with both file and console output.

    The function:
    - Sets log level from LOG_LEVEL environment variable (defaults to INFO)
    - Creates a timestamped log file in LOG_DIR (defaults to /opt/html2pdf/logs)
    - Configures both file and console logging handlers
    - Uses format: timestamp - logger name - log level - message

    The log files are not rotated and a new file is created on each service start.

    Returns:
        Path: The path to the created log file
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir = Path(os.getenv("LOG_DIR", DEFAULT_LOG_DIR))
    log_dir.mkdir(parents=True, exist_ok=True)

    current_time = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_file = log_dir / f"html2pdf-service_{current_time}.log"

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    file_handler = logging.FileHandler(log_file, encoding="utf-8", delay=False)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    configured_level = getattr(logging, log_level, logging.INFO)  # Default to INFO if invalid
    root_logger.setLevel(configured_level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    for logger_name in THIRD_PARTY_LOGGERS:
        logging.getLogger(logger_name).setLevel(configured_level)

    root_logger.info("Logging initialized with level: %s", log_level)
    root_logger.info("Log file: %s", log_file)

    for handler in root_logger.handlers:
        handler.flush()

    return log_file


def start_server(port: int) -> None:
    uvicorn.run(app=pdf_controller.app, host="", port=port)


def main() -> None:
    """
    Main entry point for the HTML to PDF service.

    Parses command line arguments, initializes logging, and starts the server.
    The port defaults to the PORT environment variable, or 9080.
    """
    setup_logging()
    config = get_service_config()

    parser = argparse.ArgumentParser(description="HTML to PDF service")
    parser.add_argument("--port", default=config.port, type=int, required=False, help="Service port")
    args = parser.parse_args()

    logging.info("HTML to PDF service (%s profile) listening port: %d", config.environment, args.port)

    start_server(args.port)


if __name__ == "__main__":
    main()
