"""Run the service with uvicorn: ``python -m admission_api``."""

import uvicorn

from admission_api.core.config import settings


def main() -> None:
    uvicorn.run(
        "admission_api.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
