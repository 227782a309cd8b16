"""Launch the geo ingest FastAPI server."""

import logging

import uvicorn

from geo_ingest import config


def main():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("geo_ingest.server:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
