#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

Serves HTTP and the /ws realtime endpoint from one uvicorn process. Set
REALTIME_RELAY_URL to run several of these side by side.
"""
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

import uvicorn

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print(f"Starting MentorLink messaging API at http://localhost:{port}")
    print(f"API Docs: http://localhost:{port}/docs")

    uvicorn.run("mentorlink.main:app", host="0.0.0.0", port=port, reload=True, log_level="info")
