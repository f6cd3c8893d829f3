"""Entrypoint: ``python -m app.server`` or the ``pipeline-foundry`` script."""

import uvicorn

from workflow.config import API_HOST, API_PORT


def main() -> None:
    uvicorn.run("app.main:app", host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    main()
