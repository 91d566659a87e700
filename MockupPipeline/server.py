# server.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from db import init_models
from mockups import router as mockups_router
from settings import settings

# --- Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)

# --- App Initialization ---
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Generates Printful mockup templates and print areas for product variants.",
    version="1.0.0",
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Database Startup Event ---
@app.on_event("startup")
async def on_startup():
    """Create database tables on startup."""
    await init_models()
    log.info("Database tables verified/created.")


app.include_router(mockups_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root():
    return {"message": settings.PROJECT_NAME, "status": "ok"}
