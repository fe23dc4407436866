import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from patent_explorer.config import settings
from patent_explorer.env_validation import log_environment_status
from patent_explorer.exceptions import ConfigurationError
from .init_db import init_models

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validation = log_environment_status(settings)
    if settings.is_development:
        logger.info("Running in development mode - using the embedded database and local auth")
        await init_models()
    elif not validation.valid:
        raise ConfigurationError("Environment validation failed: " + "; ".join(validation.errors))

    yield

    # Shutdown
    from .database import engine
    await engine.dispose()

app = FastAPI(title="Patent Explorer API", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "X-Development-Mode"],
)
