"""
Sentry configuration for error tracking.

Captures failed scan jobs and unhandled API exceptions.
"""
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from clanwins.config import settings
from clanwins.logging_config import get_logger

log = get_logger(component="sentry")


def configure_sentry():
    """
    Initialize Sentry with FastAPI and SQLAlchemy integrations.
    
    Requires SENTRY_DSN environment variable to be set.
    """
    dsn = settings.SENTRY_DSN
    
    if not dsn:
        log.warning("sentry_disabled", reason="SENTRY_DSN not set")
        return
    
    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        # Sample rate: capture 10% of transactions for performance monitoring
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
        release=settings.APP_VERSION,
    )
    
    log.info("sentry_initialized", environment=settings.ENVIRONMENT)


def capture_exception(exc=None, **tags):
    """
    Capture an exception to Sentry, tagging it with scan context.
    
    Usage:
        try:
            await processor.process(job)
        except Exception as e:
            capture_exception(e, job_id=job.id, community_id=job.community_id)
    """
    if not sentry_sdk.get_client().is_active():
        return
    with sentry_sdk.new_scope() as scope:
        for key, value in tags.items():
            scope.set_tag(key, value)
        sentry_sdk.capture_exception(exc)
