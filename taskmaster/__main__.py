"""Run the API with uvicorn: ``python -m taskmaster``."""

import uvicorn

from taskmaster.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "taskmaster.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
