from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os
import logging

from safety_audit import __version__
from safety_audit import escalation_routes, notification_routes, system_routes
from safety_audit.settings import get_settings
from safety_audit.supabase_client import get_supabase

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="SafeTrack Escalation API",
    description="Overdue finding escalation and notification service for the health & safety audit tracker",
    version=__version__
)

# Browser callers are the audit frontend; CORS_ORIGINS adds deployments beyond localhost
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
] + get_settings().cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.on_event("startup")
async def startup_event():
    """Log startup information."""
    settings = get_settings()
    port = os.environ.get("PORT", "8000")
    logger.info(f"SafeTrack Escalation API starting on port {port}")
    logger.info(f"Supabase connected: {get_supabase() is not None}")
    logger.info(f"Email transport: {settings.email_transport}")


app.include_router(system_routes.router)
app.include_router(escalation_routes.router)
app.include_router(notification_routes.router)
