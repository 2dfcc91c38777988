"""
Gunicorn configuration for Heirlooms

Every setting below shows its default and the env var that overrides it.
Unset the env var to fall back to the default shown here.

Run:
  gunicorn main:app --config gunicorn.conf.py

Notes:
- Uses Uvicorn workers for FastAPI.
- Workers share the data directory; per-artifact analysis leases are file
  locks under <data>/locks, so they hold across workers.
- Rendered artifact pages are cached per worker and re-checked against the
  record on disk for every request.
- Writes access/error logs to ./logs/ by default.
"""

import os
from pathlib import Path


# --- Paths / Logs ---
LOG_DIR = Path(os.getenv("GUNICORN_LOGDIR", "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)


# --- Binding / Network ---
# DEFAULT: 127.0.0.1:8000. Set GUNICORN_BIND=0.0.0.0:8000 to expose on the LAN.
bind = os.getenv("GUNICORN_BIND", "127.0.0.1:8000")


# --- Concurrency ---
# DEFAULT: 2 workers (Override via WEB_CONCURRENCY)
workers = int(os.getenv("WEB_CONCURRENCY", "2"))

worker_class = os.getenv("GUNICORN_WORKER_CLASS", "uvicorn.workers.UvicornWorker")

# DEFAULT: 1 (uvicorn workers ignore threads; blocking analysis runs in the
# worker's own threadpool)
threads = int(os.getenv("GUNICORN_THREADS", "1"))

# Do not preload: each worker builds its own OpenAI client and stores.
preload_app = os.getenv("GUNICORN_PRELOAD", "false").lower() == "true"


# --- Timeouts / Keepalive ---
# DEFAULT: 120s so a slow summary generation does not get the worker killed
timeout = int(os.getenv("GUNICORN_TIMEOUT", "120"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", "5"))


# --- Request cycling ---
# DEFAULT: disabled (0)
max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", "0"))
max_requests_jitter = int(os.getenv("GUNICORN_MAX_REQUESTS_JITTER", "0"))


# --- Logging ---
errorlog = os.getenv("GUNICORN_ERRORLOG", str(LOG_DIR / "gunicorn_error.log"))
accesslog = os.getenv("GUNICORN_ACCESSLOG", str(LOG_DIR / "gunicorn_access.log"))
loglevel = os.getenv("GUNICORN_LOGLEVEL", "info")
capture_output = os.getenv("GUNICORN_CAPTURE_OUTPUT", "true").lower() == "true"
access_log_format = os.getenv(
    "GUNICORN_ACCESS_FORMAT",
    '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s"',
)


# --- Dev convenience ---
reload = os.getenv("GUNICORN_RELOAD", "false").lower() == "true"


# --- Proxies (optional) ---
# DEFAULTS: leave disabled unless deploying behind a proxy that sets X-Forwarded-For
forwarded_allow_ips = os.getenv("GUNICORN_FORWARDED_ALLOW_IPS", "127.0.0.1")
proxy_protocol = os.getenv("GUNICORN_PROXY_PROTOCOL", "false").lower() == "true"
