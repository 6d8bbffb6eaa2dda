"""Run the community board API under uvicorn (auto-reload in debug mode)."""
import uvicorn

from civicboard.config import settings
from civicboard.db import describe_database

if __name__ == "__main__":
    print(f"{settings.app_name} v{settings.version} ({settings.environment.value})")
    print(f"Database: {describe_database(settings.db.url)}")
    print(f"Listening on http://{settings.api.host}:{settings.api.port}, reload={settings.debug}")

    uvicorn.run(
        "civicboard.api:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.debug,
        reload_dirs=["civicboard"] if settings.debug else None,
        log_level=settings.logging.level.lower(),
    )
