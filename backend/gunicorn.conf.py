# gunicorn.conf.py
# Gunicorn configuration for the catalog sync API

import logging
import os

wsgi_app = 'app:create_app()'
# The server always shares a connection pool
raw_env = ['DB_USE_POOLING=true']

accesslog = '-'
errorlog = '-'
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()

bind = f"0.0.0.0:{os.environ.get('PORT', '5001')}"
workers = 1
worker_class = 'gthread'
threads = 4
# Backfills page through the whole store in one request
timeout = 600
graceful_timeout = 30


def post_worker_init(worker):
    """Open the pool before the first sync request arrives"""
    import db_utils

    if not db_utils.init_connection_pool():
        logging.getLogger(__name__).error(
            f"Worker {os.getpid()} started without a connection pool"
        )


def worker_exit(server, worker):
    import db_utils

    logging.getLogger(__name__).info(f"Worker {worker.pid} exiting, closing connection pool")
    db_utils.close_connection_pool()
