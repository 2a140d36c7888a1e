"""
Gunicorn configuration for tripgate.

    gunicorn -c gunicorn.conf.py "tripgate.wsgi:create_wsgi_app()"

All values are config-driven via environment variables. With more than one
worker, point RATE_LIMIT_STORAGE_URI at a shared store (redis://...) so login
attempts are counted across workers.
"""

import multiprocessing
import os

# =============================================================================
# WORKERS
# =============================================================================

worker_class = os.environ.get("GUNICORN_WORKER_CLASS", "gthread")


def get_workers():
    env_workers = os.environ.get("GUNICORN_WORKERS")
    if env_workers:
        return int(env_workers)
    # bcrypt checks are CPU-bound; stay close to the core count
    return max(min(multiprocessing.cpu_count() + 1, 8), 2)


workers = get_workers()
threads = int(os.environ.get("GUNICORN_THREADS", "4"))

timeout = int(os.environ.get("GUNICORN_TIMEOUT", "30"))
graceful_timeout = int(os.environ.get("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.environ.get("GUNICORN_KEEPALIVE", "5"))

max_requests = int(os.environ.get("GUNICORN_MAX_REQUESTS", "1000"))
max_requests_jitter = int(os.environ.get("GUNICORN_MAX_REQUESTS_JITTER", "50"))

# =============================================================================
# NETWORK
# =============================================================================

bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:5000")
forwarded_allow_ips = os.environ.get("GUNICORN_FORWARDED_ALLOW_IPS", "*")
limit_request_line = int(os.environ.get("GUNICORN_LIMIT_REQUEST_LINE", "4094"))

# =============================================================================
# LOGGING
# =============================================================================

loglevel = os.environ.get("GUNICORN_LOGLEVEL", "info")
accesslog = os.environ.get("GUNICORN_ACCESS_LOG", "-")
errorlog = os.environ.get("GUNICORN_ERROR_LOG", "-")
capture_output = os.environ.get("GUNICORN_CAPTURE_OUTPUT", "true").lower() == "true"


def on_starting(server):
    import logging
    logging.getLogger("gunicorn").info(
        f"Starting tripgate with {workers} workers, worker_class={worker_class}, threads={threads}"
    )


def worker_abort(worker):
    import logging
    logging.getLogger("gunicorn").error(f"Worker {worker.pid} aborted (timeout?)")
