from __future__ import annotations

import uvicorn

from frontend.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("frontend.main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
