import atexit
import logging
import os
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from flask_mail import Mail, Message
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

log = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Core singletons
# ─────────────────────────────────────────────────────────────
db = SQLAlchemy()
migrate = Migrate()
mail = Mail()


# ─────────────────────────────────────────────────────────────
# Background tasks + clean shutdown
# ─────────────────────────────────────────────────────────────
_BG_MAX_WORKERS = int(os.getenv("BG_MAX_WORKERS", "4"))
_EXECUTOR = ThreadPoolExecutor(max_workers=_BG_MAX_WORKERS, thread_name_prefix="giving-bg")


def run_bg(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
    return _EXECUTOR.submit(func, *args, **kwargs)


@atexit.register
def _shutdown_executor() -> None:
    _EXECUTOR.shutdown(wait=False, cancel_futures=True)


# ─────────────────────────────────────────────────────────────
# Transaction helpers
# ─────────────────────────────────────────────────────────────
def tx_commit(session: Any = None) -> None:
    """Commit (default: the scoped session), rolling back before re-raising on failure."""
    s = session if session is not None else db.session
    try:
        s.commit()
    except Exception:
        s.rollback()
        raise


def with_db_retry(retries: int = 2, backoff: float = 0.2, retry_on: tuple = (Exception,)):
    def _wrap(fn: Callable[..., Any]) -> Callable[..., Any]:
        def _inner(*args: Any, **kwargs: Any):
            attempt = 0
            while True:
                try:
                    return fn(*args, **kwargs)
                except retry_on:
                    db.session.rollback()
                    attempt += 1
                    if attempt > retries:
                        raise
                    log.warning("DB operation %s failed (attempt %s/%s), retrying", fn.__name__, attempt, retries)
                    time.sleep(float(backoff) * attempt)

        _inner.__name__ = getattr(fn, "__name__", "_inner")
        _inner.__doc__ = getattr(fn, "__doc__", None)
        return _inner

    return _wrap


# ─────────────────────────────────────────────────────────────
# Email helper
# ─────────────────────────────────────────────────────────────
def _render(tpl: str, ctx: Dict[str, Any]) -> str:
    return tpl.format(**ctx) if ctx else tpl


def send_email_async(
    app: Any,
    subject: str,
    recipients: List[str],
    *,
    text_template: Optional[str] = None,
    html_template: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    sender: Optional[str] = None,
    max_retries: int = 2,
    retry_backoff: float = 0.5,
) -> Future:
    ctx = context or {}

    def _job() -> bool:
        # Always run inside an app context
        with app.app_context():
            logger = getattr(app, "logger", log)

            try:
                msg = Message(
                    subject=subject,
                    recipients=recipients,
                    sender=sender or app.config.get("DEFAULT_MAIL_SENDER"),
                    body=_render(text_template, ctx) if text_template else None,
                    html=_render(html_template, ctx) if html_template else None,
                )

                attempts = 0
                while True:
                    try:
                        mail.send(msg)
                        return True
                    except Exception as e:
                        attempts += 1
                        if attempts > max_retries:
                            raise
                        logger.warning("Mail send failed (attempt %s/%s): %s", attempts, max_retries, e)
                        time.sleep(float(retry_backoff) * attempts)

            except Exception as e:
                logger.error("Email send permanently failed: %s", e, exc_info=True)
                return False

    return run_bg(_job)


__all__ = [
    "db",
    "migrate",
    "mail",
    "run_bg",
    "tx_commit",
    "with_db_retry",
    "send_email_async",
]
