"""
Entry point for running the gateway.

Usage:
    python -m trip_gateway

Starts the FastAPI server on HOST:PORT (default http://0.0.0.0:8000).
"""
import uvicorn

from logging_setup import setup_logging
from trip_pipeline.config import get_gateway_config

if __name__ == "__main__":
    gateway_config = get_gateway_config()
    setup_logging(
        level=gateway_config.log_level,
        use_json=gateway_config.log_json,
        include_pii=gateway_config.log_include_pii,
    )

    uvicorn.run(
        "trip_gateway.server:app",
        host=gateway_config.host,
        port=gateway_config.port,
        log_level=gateway_config.log_level.lower(),
    )
