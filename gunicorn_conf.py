import multiprocessing

# Gunicorn config
bind = "0.0.0.0:8000"  # Match this port in your ALB target group
workers = max(2, multiprocessing.cpu_count())
worker_class = "uvicorn.workers.UvicornWorker"
wsgi_app = "patent_explorer.main:app"
# Long chat turns stream for up to CHAT_MAX_DURATION_SECONDS
timeout = 800
graceful_timeout = 30
keepalive = 75
loglevel = "info"
accesslog = "/var/log/gunicorn/access.log"
errorlog = "/var/log/gunicorn/error.log"
