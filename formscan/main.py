"""Application entry point for the formscan API server."""

import uvicorn
from dotenv import load_dotenv

from formscan.api.app import app
from formscan.utils.config import load_config
from formscan.utils.logger import setup_logging

PORT = 5000


def main() -> None:
    """Start the FastAPI application server."""
    load_dotenv()
    config = load_config()
    setup_logging(config.log_level)
    uvicorn.run(app, host="0.0.0.0", port=PORT)


if __name__ == "__main__":
    main()
