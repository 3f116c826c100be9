import os

import uvicorn

from utils.logging_utils import get_tagged_logger, setup_logging

logger = get_tagged_logger(__name__, tag="server")


if __name__ == "__main__":
    setup_logging(level=os.getenv("MICROCLIMATE_LOG_LEVEL", "INFO"), job_name="microclimate_hub")
    logger.info("Starting Microclimate Hub API")

    uvicorn.run(
        "microclimate_hub.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False,
    )
