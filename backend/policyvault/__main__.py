"""Run the policyvault server: ``python -m policyvault``.

The restart supervisor re-invokes this same command line when it hands
off to a replacement process.
"""

import logging

import uvicorn

from policyvault.main import app, settings


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
