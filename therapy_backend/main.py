import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from therapy_backend.core import config
from therapy_backend.database import Base, engine, ensure_booking_schema, ensure_busy_interval_schema
from therapy_backend.models import availability, booking, busy_interval, feedback, presence, therapist, user  # noqa: F401
from therapy_backend.routes import (
    admin_routes,
    auth_routes,
    availability_routes,
    booking_routes,
    feedback_routes,
    presence_routes,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

logger = logging.getLogger(__name__)

app = FastAPI(title='Therapy Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema()
        ensure_busy_interval_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Therapy Booking API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(availability_routes.router, prefix='/availability')
app.include_router(booking_routes.router, prefix='/bookings')
app.include_router(feedback_routes.router, prefix='/feedback')
app.include_router(admin_routes.router, prefix='/admin')
app.include_router(presence_routes.router, prefix='/presence')
