#!/usr/bin/env python
"""
Quick start script for the SolarScope analyzer
Run this file to start the application
"""

import os
import sys

import config


def main():
    print("=" * 60)
    print("SolarScope Analyzer - Quick Start")
    print("=" * 60)
    print()

    # Check if database exists
    if not os.path.exists(config.DATABASE_FILE):
        print("[*] Initializing database...")
        from database import AnalysisStore
        AnalysisStore(config.DATABASE_FILE).init_schema()
        print()

    if not config.GOOGLE_API_KEY:
        print("[!] GOOGLE_API_KEY is not set - analyses will use the built-in fallback engine")
        print()

    print("[*] Starting SolarScope Analyzer...")
    print()
    print("=" * 60)
    print(f"[URL] API: http://localhost:{config.PORT}")
    print(f"[URL] Docs: http://localhost:{config.PORT}/docs")
    print("=" * 60)
    print()
    print("Press Ctrl+C to stop the server")
    print()

    # Run uvicorn
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=config.PORT, reload=not config.IS_PRODUCTION)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n\nSolarScope Analyzer stopped. Goodbye!")
        sys.exit(0)
