#!/usr/bin/env python3
"""Run the intake API. Usage: python run_api.py. Set HOST=0.0.0.0 to allow network access."""
from pathlib import Path

# Load .env before uvicorn (and the reload worker) start; .env wins over shell env.
_ROOT = Path(__file__).resolve().parent
from dotenv import load_dotenv
load_dotenv(_ROOT / ".env", override=True)

import uvicorn

from aura_intake.core.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "aura_intake.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=True,
    )
