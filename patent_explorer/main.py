import logging

from .common import app
from .config import settings
from .routers.artifacts.endpoints import router as ArtifactEndpoints
from .routers.chat.endpoints import router as ChatEndpoints
from .routers.sessions.endpoints import router as SessionEndpoints
from .routers.status.endpoints import router as StatusEndpoints

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)

# Include routers
app.include_router(ChatEndpoints)
app.include_router(SessionEndpoints)
app.include_router(ArtifactEndpoints)
app.include_router(StatusEndpoints)
