import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .api import activities, calendar, dashboard, system, turns, units, users, vendors
from .config import Base, engine, settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.request_context import REQUEST_ID_HEADER, assign_request_id
from .core.security import SecurityHeadersMiddleware, log_security_warnings

configure_logging(settings.log_level, json_logs=settings.log_json)
logger = logging.getLogger(__name__)

app = FastAPI(title="Turnboard - Unit Turn Workflow")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
register_exception_handlers(app)


@app.middleware("http")
async def stamp_request_id(request: Request, call_next):
    request_id = assign_request_id(request)
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.on_event("startup")
def startup() -> None:
    # In dev we make sure tables exist. Alembic migrations should be used for real schema evolution.
    Base.metadata.create_all(bind=engine)
    log_security_warnings(settings.jwt_secret, settings.database_url)
    logger.info("Turnboard API started")


app.include_router(units.router, prefix="/units", tags=["units"])
app.include_router(turns.router, prefix="/turns", tags=["turns"])
app.include_router(vendors.router, prefix="/vendors", tags=["vendors"])
app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(calendar.router, prefix="/calendar", tags=["calendar"])
app.include_router(activities.router, prefix="/activities", tags=["activities"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
app.include_router(system.router, prefix="/system", tags=["system"])
