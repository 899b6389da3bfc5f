"""
Entry point for running the Echo Show bridge skill server.

Usage:
    python -m skill_server

Starts the FastAPI server on SKILL_SERVER_HOST:SKILL_SERVER_PORT
(default http://0.0.0.0:8000).
"""
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from logging_setup import setup_logging

if __name__ == "__main__":
    # Local dev convenience; never overrides variables already exported.
    root = Path(__file__).parent.parent
    for name in (".env_local", ".env.local"):
        p = root / name
        if p.exists():
            load_dotenv(p, override=False)

    setup_logging(level=os.getenv("LOG_LEVEL", "INFO"), use_json=True)

    port = os.getenv("SKILL_SERVER_PORT", "8000")
    uvicorn.run(
        "skill_server.webhook_server:app",
        host=os.getenv("SKILL_SERVER_HOST", "0.0.0.0"),
        port=int(port) if port.isdigit() else 8000,
        log_level="info",
    )
