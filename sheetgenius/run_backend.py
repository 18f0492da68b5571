#!/usr/bin/env python3
"""
Backend startup wrapper for local development.
"""
import os
import sys

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print("[Backend] Starting SheetGenius backend")
    print(f"[Backend] Server: http://localhost:{port}")
    try:
        import uvicorn

        uvicorn.run(
            "sheetgenius.main:app",
            host="0.0.0.0",
            port=port,
            reload=False,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\n[Backend] Shutting down...")
        sys.exit(0)
