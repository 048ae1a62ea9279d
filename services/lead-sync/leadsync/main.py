"""
Lead Sync - CRM webhook and form intake service
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from leadsync.core.config import get_settings
from leadsync.core.errors import register_exception_handlers
from leadsync.core.logging import LoggingMiddleware, configure_logging
from leadsync.api.v1 import activity, contacts, intake, opportunities

SERVICE_NAME = "lead-sync"
VERSION = "1.0.0"

settings = get_settings()
configure_logging(settings)

app = FastAPI(
    title="Lead Sync API",
    description="Synchronizes contacts and opportunities between the sales database and the CRM",
    version=VERSION,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)

register_exception_handlers(app)

# API routes
app.include_router(contacts.router, prefix="/v1/webhooks", tags=["contacts"])
app.include_router(opportunities.router, prefix="/v1/webhooks", tags=["opportunities"])
app.include_router(activity.router, prefix="/v1/webhooks", tags=["activity"])
app.include_router(intake.router, prefix="/v1/intake", tags=["intake"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": SERVICE_NAME}


@app.get("/")
async def root():
    return {
        "service": SERVICE_NAME,
        "version": VERSION,
        "docs": "/docs"
    }
