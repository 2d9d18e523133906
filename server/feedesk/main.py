from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from feedesk.api.v1.endpoints import auth, courses, students, fees
from feedesk.api.v1.endpoints import defaulters, notifications, reports
from feedesk.core.config import settings
from feedesk.db.supabase import check_connection

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info(f"Starting {settings.PROJECT_NAME} API...")
    if await check_connection():
        logger.info("Supabase connection established")
    else:
        logger.error("Supabase connection failed")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.PROJECT_NAME} API...")

# Initialize FastAPI app
app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    description="Fee management backend: students, courses, fee records, defaulters and reports",
    version=settings.VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT
    }

# Include API routers
prefix = settings.API_V1_PREFIX
app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["Authentication"])
app.include_router(courses.router, prefix=f"{prefix}/courses", tags=["Courses"])
app.include_router(students.router, prefix=f"{prefix}/students", tags=["Students"])
app.include_router(fees.router, prefix=f"{prefix}/fees", tags=["Fees"])
app.include_router(defaulters.router, prefix=f"{prefix}/defaulters", tags=["Defaulters"])
app.include_router(notifications.router, prefix=f"{prefix}/notifications", tags=["Notifications"])
app.include_router(reports.router, prefix=f"{prefix}/reports", tags=["Reports"])

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": f"{settings.PROJECT_NAME} API",
        "docs": "/api/docs",
        "version": settings.VERSION
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "feedesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development"
    )
