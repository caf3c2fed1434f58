import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from telemed.core import config
from telemed.database import (
    Base,
    engine,
    ensure_appointment_schema,
    ensure_payment_schema,
    ensure_schedule_schema,
)
from telemed.models import appointment, doctor, feedback, invoice, payment, prescription, schedule, user  # noqa: F401
from telemed.routes import (
    appointment_routes,
    auth_routes,
    doctor_routes,
    feedback_routes,
    payment_routes,
    prescription_routes,
    schedule_routes,
)
from telemed.scheduling.lifecycle import warn_on_review_shortcut
from telemed.services.ledger import policy_for

app = FastAPI(title='Telemed Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    warn_on_review_shortcut(policy_for(config.build_scheduling_config()))

    try:
        Base.metadata.create_all(bind=engine)
        ensure_schedule_schema()
        ensure_appointment_schema()
        ensure_payment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Telemed Scheduling API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(schedule_routes.router, prefix='/schedules')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(payment_routes.router, prefix='/payments')
app.include_router(doctor_routes.router, prefix='/doctors')
app.include_router(feedback_routes.router, prefix='/feedback')
app.include_router(prescription_routes.router, prefix='/prescriptions')
