"""
Entry point for the Order Assistant API.

    uvicorn order_assistant.main:app --reload

or

    python -m order_assistant.main --port 8000
"""

import argparse
import logging
from typing import Optional

from .app_factory import create_app
from .db import init_db
from .logging_config import setup_logging

# Configure logging at module load time
setup_logging()

logger = logging.getLogger(__name__)

app = create_app()


def run(host: str = "0.0.0.0", port: int = 8000, reload: bool = False, create_tables: bool = False) -> None:
    """
    Run the API with uvicorn.

    Args:
        host: Host to bind to
        port: Port to run on
        reload: Enable auto-reload for development
        create_tables: Create missing tables before serving (development only;
            use Alembic migrations otherwise)
    """
    import uvicorn

    if create_tables:
        init_db()

    logger.info("Starting Order Assistant on %s:%d", host, port)
    if reload:
        uvicorn.run("order_assistant.main:app", host=host, port=port, reload=True)
    else:
        uvicorn.run(app, host=host, port=port)


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(description="Run the Order Assistant API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    args = parser.parse_args(argv)
    run(host=args.host, port=args.port, reload=args.reload, create_tables=args.create_tables)


if __name__ == "__main__":
    main()
