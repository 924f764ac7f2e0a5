from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.absences.router import router as absences_router
from app.api.v1.attendance.router import router as attendance_router
from app.api.v1.notifications.router import router as notifications_router
from app.api.v1.promotions.router import router as promotions_router
from app.api.v1.reports.router import router as reports_router
from app.api.v1.students.router import router as students_router
from app.api.v1.subjects.router import router as subjects_router
from app.api.v1.teachers.router import router as teachers_router
from app.core.config import Settings, settings as default_settings
from app.core.logging import configure_logging
from app.db.schema_check import ensure_tables
from app.db.session import create_engine, create_session_factory
from app.notifications.whatsapp import WhatsAppClient
from app.roster.registry import RosterRegistry


def create_app(app_settings: Settings = None) -> FastAPI:
    app_settings = app_settings or default_settings
    configure_logging(app_settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = create_engine(app_settings.database_url)
        await ensure_tables(engine)
        app.state.session_factory = create_session_factory(engine)
        app.state.registry = RosterRegistry(engine)
        app.state.whatsapp = WhatsAppClient(app_settings)
        try:
            yield
        finally:
            await app.state.whatsapp.aclose()
            await app.state.registry.dispose()

    app = FastAPI(title="Attendance Roster Backend", lifespan=lifespan)

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(promotions_router)
    app.include_router(students_router)
    app.include_router(subjects_router)
    app.include_router(attendance_router)
    app.include_router(absences_router)
    app.include_router(notifications_router)
    app.include_router(reports_router)
    app.include_router(teachers_router)

    return app


app = create_app()
