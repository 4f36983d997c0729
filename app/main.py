"""LeaseDesk back office - FastAPI application."""
# Load .env before any app code that might read config
from dotenv import load_dotenv
from pathlib import Path
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.database import Base, engine
from app.errors import register_error_handlers
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from app.models import (  # noqa: F401
    User, Property, Unit, Tenant, Lease,
    LeaseAgreement, LeaseSignature, TenantInvitation, AuditLog,
)
from app.routers import auth, lease_agreements, tenant_invitations

logger = logging.getLogger("uvicorn.error")

settings = get_settings()
app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(auth.router)
app.include_router(lease_agreements.router)
app.include_router(tenant_invitations.router)

scheduler = None


@app.on_event("startup")
def startup():
    global scheduler
    if settings.mailgun_api_key and settings.mailgun_domain:
        logger.info("Mailgun configured: domain=%s from=%s", settings.mailgun_domain, settings.mailgun_from_email)
    elif settings.sendgrid_api_key:
        logger.info("SendGrid configured: from=%s", settings.sendgrid_from_email)
    else:
        logger.warning("No email transport configured - agreement and invitation emails will be skipped")

    Base.metadata.create_all(bind=engine)
    from app.database import SessionLocal
    from app.seed import seed_landlord
    db = SessionLocal()
    try:
        seed_landlord(db)
    finally:
        db.close()

    if settings.invitation_cleanup_enabled:
        from apscheduler.schedulers.background import BackgroundScheduler
        from app.services.invitation_cleanup import run_invitation_cleanup_job
        scheduler = BackgroundScheduler()
        scheduler.add_job(run_invitation_cleanup_job, "interval", hours=1)
        scheduler.start()


@app.on_event("shutdown")
def shutdown():
    if scheduler is not None:
        scheduler.shutdown(wait=False)


@app.get("/")
def root():
    return {"app": settings.app_name, "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
