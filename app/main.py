# app/main.py

import logging
import logging.config
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import LOGGING
from app.db import create_db_and_tables
from app.routers import (
    admin_routes,
    auth_routes,
    bookings_routes,
    notifications_routes,
    payments_routes,
    reviews_routes,
    salons_routes,
    services_routes,
    staff_routes,
    users_routes,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.config.dictConfig(LOGGING)
    create_db_and_tables()
    logger.info("Database ready")
    yield


app = FastAPI(title="Barbershop Booking API", lifespan=lifespan)

app.include_router(auth_routes.router)
app.include_router(users_routes.router)
app.include_router(salons_routes.router)
app.include_router(services_routes.router)
app.include_router(staff_routes.router)
app.include_router(bookings_routes.router)
app.include_router(payments_routes.router)
app.include_router(notifications_routes.router)
app.include_router(reviews_routes.router)
app.include_router(admin_routes.router)


@app.get("/health")
def health_check():
    return {"status": "ok"}
