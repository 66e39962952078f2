import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from herhealth.core import config
from herhealth.database import SessionLocal, init_db
from herhealth.routes import auth_routes, booking_routes, doctor_routes, feedback_routes, payment_routes, user_routes
from herhealth.services.onboarding import cleanup_expired_invites
from herhealth.services.reminders import ReminderScheduler
from herhealth.services.seed import seed_sample_data

logging.basicConfig(level=config.LOG_LEVEL)

logger = logging.getLogger(__name__)

reminder_scheduler = ReminderScheduler(enabled=config.REMINDER_SCHEDULER_ENABLED)


def prepare_database() -> None:
    try:
        init_db()
        db = SessionLocal()
        try:
            if config.SEED_SAMPLE_DATA:
                seed_sample_data(db)
            cleanup_expired_invites(db)
        finally:
            db.close()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.validate_runtime_config()
    prepare_database()
    reminder_scheduler.start()
    try:
        yield
    finally:
        reminder_scheduler.stop()


app = FastAPI(title='HerHealth Hub API', lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.get('/')
def root():
    return {'status': 'HerHealth Hub API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(doctor_routes.router, prefix='/api')
app.include_router(booking_routes.router, prefix='/api')
app.include_router(payment_routes.router, prefix='/api')
app.include_router(feedback_routes.router, prefix='/api')
app.include_router(user_routes.router, prefix='/api')
