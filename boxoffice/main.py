import logging
import time

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from boxoffice.api.routes.routes import router
from boxoffice.config import Settings, get_settings
from boxoffice.infrastructure.db.models import Base
from boxoffice.infrastructure.db.session import engine

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Statement echo is noise at INFO.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def wait_for_database(db_engine: Engine, max_retries: int, retry_delay: float) -> None:
    """Blocks until the database answers a trivial query or retries run out."""
    for attempt in range(1, max_retries + 1):
        try:
            with db_engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError:
            if attempt >= max_retries:
                logger.exception(
                    "Database unreachable after %s attempts. Check DATABASE_URL.",
                    max_retries,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s). Next try in %.1fs",
                attempt,
                max_retries,
                retry_delay,
            )
            time.sleep(retry_delay)
        else:
            logger.info("Database reachable after %s attempt(s).", attempt)
            return


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    application = FastAPI(title="Box Office Booking Core")
    application.include_router(router)

    @application.on_event("startup")
    def on_startup() -> None:
        wait_for_database(
            engine,
            max_retries=settings.db_connect_max_retries,
            retry_delay=settings.db_connect_retry_delay,
        )
        Base.metadata.create_all(bind=engine)

    return application


app = create_app()
