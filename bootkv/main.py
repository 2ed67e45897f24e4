import uvicorn

from bootkv.core.app_factory import create_app
from bootkv.core.config import settings

app = create_app(settings)


def run() -> None:
    """Serve ``app`` with uvicorn on the configured interface."""
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        timeout_keep_alive=0,
        timeout_graceful_shutdown=int(settings.persistence.shutdown_grace_seconds) or None,
        log_config=None,
    )


if __name__ == "__main__":
    run()
