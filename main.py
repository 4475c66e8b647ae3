"""
Resume Agents Backend
FastAPI application exposing the critique-revise resume pipelines
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging

from resume_agents import __version__
from resume_agents.api import generation_router
from resume_agents.config import Config, get_config


def _load_config() -> Config:
    """Configuration from config.yaml, or defaults when the file is absent"""
    try:
        return get_config()
    except FileNotFoundError:
        return Config()


config = _load_config()

# Configure logging
logging.basicConfig(level=getattr(logging, config.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Resume Agents backend...")
    logger.info(
        f"Primary model: {config.model.primary} (fallback: {config.model.fallback or 'none'})"
    )
    yield
    logger.info("Shutting down Resume Agents backend...")


app = FastAPI(
    title="Resume Agents API",
    description="Multi-agent critique-revise generation of resume content",
    version=__version__,
    lifespan=lifespan
)

# CORS configuration for the frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Resume Agents API",
        "version": __version__,
        "status": "running"
    }


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "services": {
            "api": "running",
            "model": config.model.primary,
        }
    }


# Include API routers
app.include_router(generation_router)

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
