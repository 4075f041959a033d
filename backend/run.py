#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

Serves app.main:app with auto-reload; gateway clients fall back to the
in-memory fakes when credentials are not configured.
"""
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

import uvicorn  # noqa: E402

if __name__ == "__main__":
    print("Starting development server at http://localhost:8000 (docs at /docs)")
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
