"""
Prometheus metrics endpoint.

Exposes scan pipeline and HTTP metrics for monitoring.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# ============================================
# HTTP Request Metrics
# ============================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================
# Scan Job Metrics
# ============================================

scan_jobs_created = Counter(
    'scan_jobs_created_total',
    'Total scan jobs created',
    ['job_type']
)

scan_jobs_claimed = Counter(
    'scan_jobs_claimed_total',
    'Total scan job claims (first claim or reclaim)',
    ['job_type', 'claim']
)

scan_jobs_completed = Counter(
    'scan_jobs_completed_total',
    'Total scan jobs completed',
    ['job_type']
)

scan_jobs_failed = Counter(
    'scan_jobs_failed_total',
    'Total scan jobs failed',
    ['job_type']
)

scan_tasks_processed = Counter(
    'scan_tasks_processed_total',
    'Total scan sub-tasks completed',
    ['task_type']
)

# ============================================
# Ledger Metrics
# ============================================

win_records_inserted = Counter(
    'win_records_inserted_total',
    'Total win records inserted (duplicates excluded)',
    ['game_mode']
)

# ============================================
# Upstream Metrics
# ============================================

stats_api_failures = Counter(
    'stats_api_failures_total',
    'Game-stats API calls that returned no usable data',
    ['endpoint']
)

notifications_sent = Counter(
    'notifications_sent_total',
    'Channel notifications by outcome',
    ['status']
)


# ============================================
# Metrics Helper Functions
# ============================================

def track_request(method: str, endpoint: str, status: int, duration_seconds: float):
    """
    Record HTTP request metrics.
    
    Call this after each request.
    """
    http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=status
    ).inc()
    
    http_request_duration.labels(
        method=method,
        endpoint=endpoint
    ).observe(duration_seconds)


def track_job_created(job_type: str):
    scan_jobs_created.labels(job_type=job_type).inc()


def track_job_claimed(job_type: str, reclaimed: bool):
    """Record a claim; reclaims of processing jobs are labelled separately."""
    scan_jobs_claimed.labels(job_type=job_type, claim="reclaim" if reclaimed else "first").inc()


def track_job_completed(job_type: str):
    scan_jobs_completed.labels(job_type=job_type).inc()


def track_job_failed(job_type: str):
    scan_jobs_failed.labels(job_type=job_type).inc()


def track_tasks_processed(task_type: str, count: int):
    if count:
        scan_tasks_processed.labels(task_type=task_type).inc(count)


def track_win_recorded(game_mode: str):
    win_records_inserted.labels(game_mode=game_mode).inc()


def track_stats_api_failure(endpoint: str):
    stats_api_failures.labels(endpoint=endpoint).inc()


def track_notification(status: str):
    notifications_sent.labels(status=status).inc()


# ============================================
# Prometheus Endpoint
# ============================================

@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.
    
    Returns all registered metrics in Prometheus format.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
