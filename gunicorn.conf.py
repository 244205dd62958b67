"""Gunicorn configuration for the rental service."""

import os

# Server socket
bind = os.environ.get('LOCAUTO_BIND', '0.0.0.0:8000')

# 2 workers with 4 threads each; request threads share the worker's backend
workers = int(os.environ.get('LOCAUTO_WORKERS', 2))
threads = 4
worker_class = 'gthread'

# Must stay above BACKEND_REQUEST_TIMEOUT (30s)
timeout = 60
graceful_timeout = 30
keepalive = 5

# Logging
accesslog = 'logs/gunicorn-access.log'
errorlog = 'logs/gunicorn-error.log'
loglevel = 'info'
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s %(D)s'

proc_name = 'locauto'

# No preload: each worker opens its own backend connection after the fork
preload_app = False

max_requests = 1000
max_requests_jitter = 50

limit_request_line = 8190
limit_request_fields = 100
