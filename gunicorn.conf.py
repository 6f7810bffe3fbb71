"""
Gunicorn configuration for the HTML to PDF service.

Defaults follow the deployment profile of app/service_config.py
(DEPLOYMENT_MODE, VERCEL, AWS_LAMBDA_FUNCTION_NAME, MAX_PAGES,
MAX_CONCURRENT_RENDERS, PORT), so the worker timeout always covers the
slowest request the profile admits.

Environment Variables:
    WORKERS: Number of worker processes (default: 1 serverless, 2 local)
    WORKER_TIMEOUT: Worker timeout in seconds (default: worst case request duration, see request_budget_seconds)
    GRACEFUL_TIMEOUT: Graceful shutdown timeout in seconds (default: 30)
    KEEP_ALIVE: Keep-alive timeout in seconds (default: 5)
    LOG_LEVEL: Log level (default: INFO)

Every request launches its own Chromium, so each worker process carries one
browser per in-flight request on top of its Playwright driver.
"""

import math
import os
from typing import Any

from app.font_resolver import FONT_FETCH_TIMEOUT_SECONDS
from app.page_renderer import FONT_SETTLE_DELAY_MS, PRINT_TIMEOUT_SECONDS
from app.schemas import MAX_RENDER_TIMEOUT_MS
from app.service_config import ServiceConfig

SERVERLESS_WORKERS = 1
LOCAL_WORKERS = 2


def request_budget_seconds(config: ServiceConfig) -> int:
    """Upper bound of one /generate-pdf request: font download plus every render window at its deadline."""
    windows = math.ceil(config.max_pages / config.max_concurrency)
    window_seconds = MAX_RENDER_TIMEOUT_MS / 1000 + FONT_SETTLE_DELAY_MS / 1000 + PRINT_TIMEOUT_SECONDS
    return math.ceil(FONT_FETCH_TIMEOUT_SECONDS + windows * window_seconds)


service_config = ServiceConfig.from_env()

bind = f"0.0.0.0:{service_config.port}"
wsgi_app = "app.pdf_controller:app"
worker_class = "uvicorn.workers.UvicornWorker"
workers = int(os.getenv("WORKERS", str(SERVERLESS_WORKERS if service_config.serverless else LOCAL_WORKERS)))

timeout = int(os.getenv("WORKER_TIMEOUT", str(request_budget_seconds(service_config))))
graceful_timeout = int(os.getenv("GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("KEEP_ALIVE", "5"))

loglevel = os.getenv("LOG_LEVEL", "INFO").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

proc_name = "html2pdf-service"

# The Playwright driver cannot be shared across a fork, each worker starts its own
preload_app = False


def on_starting(server: Any) -> None:
    server.log.info(
        "Starting %s with %d worker(s), %s profile: max %d pages, %d concurrent renders, worker timeout %ds",
        proc_name,
        workers,
        service_config.environment,
        service_config.max_pages,
        service_config.max_concurrency,
        timeout,
    )


def post_fork(server: Any, worker: Any) -> None:
    server.log.info("Worker %s spawned (PID: %s)", worker.age, worker.pid)


def worker_exit(server: Any, worker: Any) -> None:
    server.log.info("Worker %s exited", worker.pid)
