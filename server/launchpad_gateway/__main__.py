"""Run the gateway with uvicorn: ``python -m launchpad_gateway``."""

import uvicorn

from .config import config

uvicorn.run("launchpad_gateway.app:app", host=config.host, port=config.port)
