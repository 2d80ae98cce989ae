"""WSGI entry point: gunicorn -c deploy/gunicorn.conf.py halopsa_sync.wsgi:app"""

from .api import create_app
from .config import config
from .logging_setup import setup_logging

setup_logging(config.LOG_LEVEL, config.LOG_FILE)

app = create_app()
