import uvicorn

from quota_gate.core.app_factory import create_app
from quota_gate.core.config import settings

app = create_app()


def run() -> None:
    """Serve the API with uvicorn (``quota-gate`` console script)."""
    uvicorn.run(
        "quota_gate.main:app",
        host="0.0.0.0",
        port=8000,
        log_config=None,
        reload=settings.app.debug,
    )


if __name__ == "__main__":
    run()
