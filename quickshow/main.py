import asyncio
import logging

from fastapi import FastAPI
from contextlib import asynccontextmanager
from quickshow.db.init_db import create_database
from quickshow.db.base import Base
from quickshow.db.session import engine, SessionLocal
from quickshow.core.config import settings
from quickshow.core.exceptions import register_exception_handlers
from quickshow.api.v1.router import api_router
from quickshow.api.deps import get_notifier

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


async def _expiry_loop() -> None:
    """Background task: release unpaid holds whose deadline has passed."""
    from quickshow.services.expiry import run_due_expiries
    from quickshow.services.payments import get_payment_provider

    payments = get_payment_provider() if settings.STRIPE_SECRET_KEY else None
    while True:
        try:
            db = SessionLocal()
            try:
                count = run_due_expiries(db, payments=payments)
                if count:
                    logger.info("Resolved %d booking expiry task(s).", count)
            finally:
                db.close()
        except Exception:
            logger.exception("Error while running booking expiries.")
        await asyncio.sleep(settings.EXPIRY_POLL_SECONDS)


async def _reminder_loop() -> None:
    """Background task: remind customers of shows starting soon."""
    from quickshow.services.notifications import send_show_reminders

    while True:
        try:
            db = SessionLocal()
            try:
                count = send_show_reminders(db, get_notifier())
                if count:
                    logger.info("Sent %d show reminder(s).", count)
            finally:
                db.close()
        except Exception:
            logger.exception("Error while sending show reminders.")
        await asyncio.sleep(settings.REMINDER_POLL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Ensure DB exists and create tables
    create_database()
    Base.metadata.create_all(bind=engine)

    # Pending expiries are rows, so anything due while we were down fires now
    tasks = [
        asyncio.create_task(_expiry_loop()),
        asyncio.create_task(_reminder_loop()),
    ]
    yield

    # Shutdown: cancel background tasks
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass


from fastapi.middleware.cors import CORSMiddleware

app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
def read_root():
    return {"Hello": "QuickShow"}
