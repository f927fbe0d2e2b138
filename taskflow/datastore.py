"""
Data store client — explicit connection lifecycle around the SQLAlchemy engine.

The engine itself is owned by Flask-SQLAlchemy; this class only decides
when the process is allowed to start serving (``connect``) and when the
pool is torn down (``close``).

Usage:
    store = DataStore(app)
    store.connect()                 # pings with retry/backoff, creates tables, raises on exhaustion
    store.install_signal_handlers() # SIGINT/SIGTERM → close()
    ...
    store.close()
"""

import logging
import signal
import time

from sqlalchemy.exc import SQLAlchemyError

from taskflow.models import db

logger = logging.getLogger(__name__)


class DataStoreUnavailable(RuntimeError):
    """The database could not be reached within the configured retries."""


class DataStore:
    """Connect/close wrapper stored in ``app.extensions["datastore"]``."""

    def __init__(self, app=None, *, retries=None, backoff=None, max_backoff=None, sleep=time.sleep):
        self.app = None
        self.retries = retries
        self.backoff = backoff
        self.max_backoff = max_backoff
        self.connected = False
        self._sleep = sleep
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        cfg = app.config
        if self.retries is None:
            self.retries = max(int(cfg.get("DATASTORE_CONNECT_RETRIES", 5)), 1)
        if self.backoff is None:
            self.backoff = float(cfg.get("DATASTORE_RETRY_BACKOFF", 1))
        if self.max_backoff is None:
            self.max_backoff = float(cfg.get("DATASTORE_MAX_BACKOFF", 8))
        app.extensions["datastore"] = self

    def _delay(self, attempt: int) -> float:
        return min(self.backoff * 2 ** (attempt - 1), self.max_backoff)

    def ping(self) -> None:
        with self.app.app_context():
            with db.engine.connect() as conn:
                conn.execute(db.text("SELECT 1"))

    def connect(self) -> "DataStore":
        """Ping the database until it answers, backing off between attempts."""
        last_error = None
        for attempt in range(1, self.retries + 1):
            try:
                self.ping()
            except SQLAlchemyError as exc:
                last_error = exc
                logger.warning("Data store connect attempt %d/%d failed: %s",
                               attempt, self.retries, exc)
                if attempt < self.retries:
                    self._sleep(self._delay(attempt))
                continue
            self.connected = True
            logger.info("Data store connected (attempt %d/%d)", attempt, self.retries)
            self.ensure_schema()
            return self

        self.connected = False
        logger.error("Data store unavailable after %d attempts", self.retries)
        raise DataStoreUnavailable(
            f"Database unreachable after {self.retries} attempts: {last_error}"
        ) from last_error

    def ensure_schema(self) -> None:
        """Create missing tables. Runs once the database answers."""
        with self.app.app_context():
            db.create_all()
        logger.info("Data store schema ensured")

    def close(self) -> None:
        """Dispose the engine pool. Safe to call more than once."""
        if self.app is None:
            return
        with self.app.app_context():
            db.session.remove()
            db.engine.dispose()
        if self.connected:
            logger.info("Data store connection pool disposed")
        self.connected = False

    def install_signal_handlers(self, signals=(signal.SIGINT, signal.SIGTERM)):
        """Close the pool on shutdown signals, then defer to the previous handler."""
        for sig in signals:
            previous = signal.getsignal(sig)

            def _handler(signum, frame, _previous=previous):
                logger.info("Received signal %s, closing data store", signum)
                self.close()
                if callable(_previous):
                    _previous(signum, frame)
                elif signum == signal.SIGINT:
                    raise KeyboardInterrupt
                else:
                    raise SystemExit(0)

            signal.signal(sig, _handler)
