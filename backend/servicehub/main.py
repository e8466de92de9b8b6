import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from servicehub.config import settings
from servicehub.middleware.exceptions import register_exception_handlers
from servicehub.routers import assignments, billing, categories, health, invites, services, verification
from servicehub.services.scheduler import lifespan

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="ServiceHub",
    description="Service catalog, client assignments, renewal billing and reminders",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)

# Catalog
app.include_router(categories.router, prefix="/api/categories", tags=["categories"])
app.include_router(services.router, prefix="/api/services", tags=["services"])

# Assignments & renewal schedules (mixed paths, mounted at /api)
app.include_router(assignments.router, prefix="/api", tags=["assignments"])

# Billing
app.include_router(billing.router, prefix="/api/billing", tags=["billing"])

# Client onboarding
app.include_router(invites.router, prefix="/api/invites", tags=["invites"])
app.include_router(verification.router, prefix="/api/verification", tags=["verification"])
