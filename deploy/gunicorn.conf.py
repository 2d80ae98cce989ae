"""
Gunicorn configuration for the HaloPSA sync API.

    gunicorn -c deploy/gunicorn.conf.py halopsa_sync.wsgi:app
"""

# Entity locks and the audit writer thread are in-process, so a single worker
# must serve every request. Concurrency comes from threads.
workers = 1
worker_class = "gthread"
threads = 8
timeout = 60  # one sync makes at most three sequential HaloPSA calls

bind = "127.0.0.1:8300"

# Only trust X-Forwarded-* headers from the reverse proxy on localhost
forwarded_allow_ips = "127.0.0.1"

# Logging
accesslog = "-"  # stdout -> journald
errorlog = "-"   # stderr -> journald
loglevel = "info"


def worker_exit(server, worker):
    """Drain queued audit entries before the worker goes away."""
    from halopsa_sync import sync_engine

    # Nothing to drain if this worker never built an engine
    if sync_engine._engine is not None:
        sync_engine._engine.audit.close()
