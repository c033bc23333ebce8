# =============================================================================
# TeamSpace - Gunicorn Production Configuration
# =============================================================================
import os
import multiprocessing

wsgi_app = "run:app"

bind = f"0.0.0.0:{os.environ.get('PORT', '8080')}"

# Threads carry the load: most request time is spent waiting on Mercado Pago,
# Stripe or Gemini, not on CPU.
worker_class = "gthread"
workers = int(os.environ.get("WEB_CONCURRENCY", min(multiprocessing.cpu_count() * 2 + 1, 4)))
threads = int(os.environ.get("WEB_THREADS", 4))

preload_app = True

# A worker must outlive the slowest upstream call (Gemini document analysis)
timeout = int(os.environ.get("GEMINI_TIMEOUT_SECONDS", 60)) + 30
graceful_timeout = 30
keepalive = 5

accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info")
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(L)s "%(a)s"'

max_requests = 1000
max_requests_jitter = 50

limit_request_line = 8190
limit_request_fields = 100
limit_request_field_size = 8190

# Provider webhooks arrive through the platform's proxy
forwarded_allow_ips = os.environ.get("FORWARDED_ALLOW_IPS", "*")


def when_ready(server):
    missing = [key for key in ("MP_ACCESS_TOKEN", "STRIPE_WEBHOOK_SECRET", "CRON_SECRET") if not os.environ.get(key)]
    if missing:
        server.log.warning("Billing settings missing: %s", ", ".join(missing))
    server.log.info("TeamSpace ready: %s workers x %s threads", workers, threads)
