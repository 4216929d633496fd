"""
RankPilot API

FastAPI application serving the SEO workspace:
1. Projects, competitors and tracked keywords
2. Keyword research (gap analysis, ideas, metrics) via DataForSEO
3. Rank tracking, backlinks and Google Search Console sync
4. Link-building outreach campaigns driven through n8n
5. AI chat assistant and on-page analysis
"""

import logging
import sys
from datetime import datetime

from dotenv import load_dotenv
from fastapi import FastAPI

from rankpilot import __version__
from rankpilot.database import init_db, check_db_connection, get_db_info
from rankpilot.utils.config import get_settings

from api import backlinks, chat, cron, dashboard, gsc, keywords, outreach, pages, projects, rankings, users

# Export .env to os.environ for the SDKs that read it directly
load_dotenv()
settings = get_settings()

# Configure logging to stdout (platforms treat stderr as errors)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

app = FastAPI(
    title="RankPilot SEO API",
    description="Keyword research, rank tracking, Search Console and outreach powered by DataForSEO and Claude",
    version=__version__,
)

app.include_router(projects.router)
app.include_router(keywords.router)
app.include_router(keywords.project_keywords_router)
app.include_router(rankings.router)
app.include_router(backlinks.router)
app.include_router(outreach.router)
app.include_router(gsc.router)
app.include_router(chat.router)
app.include_router(pages.router)
app.include_router(dashboard.router)
app.include_router(cron.router)
app.include_router(users.router)


# ============================================================================
# STARTUP - Initialize Database
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    logger.info("Initializing database...")
    try:
        init_db()
        if check_db_connection():
            logger.info("Database connection verified")
        else:
            logger.warning("Database connection check failed - continuing anyway")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "RankPilot SEO API"}


@app.get("/api/health")
async def health():
    """Detailed health check including database and upstream configuration."""
    db_connected = check_db_connection()

    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__,
        "database": "connected" if db_connected else "disconnected",
        "dataforseo": "configured" if settings.dataforseo_configured else "missing",
        "gsc": "configured" if settings.gsc_configured else "missing",
        "chat": "configured" if settings.ANTHROPIC_API_KEY else "missing",
    }


@app.get("/api/database")
async def database_status():
    """Database type and connectivity. Use this to debug deployments."""
    db_info = get_db_info()
    return {"status": "ok" if db_info["connected"] else "error", **db_info}


# ============================================================================
# RUN SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
