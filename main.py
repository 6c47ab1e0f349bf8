"""
Auto-Body Analytics Backend - Main Application

Analytics API for the auto-body shop mobile app.
Merges inspections from the app's Firestore database with CPanel invoices
and serves a single aggregated report.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
import os
import logging

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

from app.routers import analytics
from app.services.analytics_cache import get_analytics_cache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    logger.info("Starting Auto-Body Analytics Backend...")
    yield
    # Shutdown
    logger.info("Shutting down Auto-Body Analytics Backend...")
    get_analytics_cache().clear()


# Initialize FastAPI app
app = FastAPI(
    title="Auto-Body Analytics Backend",
    description="Shop analytics over app inspections and CPanel invoices",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware (configure for your domains)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])


@app.get("/")
def read_root():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "Auto-Body Analytics Backend",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Detailed health check"""
    return {
        "status": "healthy",
        "firebase_configured": bool(os.getenv("FIREBASE_PROJECT_ID")),
        "firebase_collection": os.getenv("FIREBASE_COLLECTION", "inspections"),
        "cpanel_configured": bool(os.getenv("CPANEL_API_URL") and os.getenv("CPANEL_API_KEY")),
        "cache_enabled": get_analytics_cache().enabled
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=True)
