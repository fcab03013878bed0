"""
Gunicorn configuration for the rewards engine.

    gunicorn -c gunicorn.conf.py run:app
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Short synchronous requests; each holds one DB connection
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
timeout = 30
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'rewards'

preload_app = True

graceful_timeout = 30


def on_starting(server):
    print("[Gunicorn] Starting rewards engine...")


def on_exit(server):
    print("[Gunicorn] Rewards engine shutting down...")
