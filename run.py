#!/usr/bin/env python3

import uvicorn

from codegate.utils.logger import app_logger

if __name__ == "__main__":
    app_logger.info("=" * 80)
    app_logger.info("🚀 Starting CodeGate API Server")
    app_logger.info("=" * 80)

    uvicorn.run(
        "codegate.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
        access_log=True
    )
