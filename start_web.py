#!/usr/bin/env python3
"""Serve the cpmup manifest checker over HTTP."""

import os

import uvicorn

if __name__ == "__main__":
    host = os.environ.get("CPMUP_WEB_HOST", "127.0.0.1")
    port = int(os.environ.get("CPMUP_WEB_PORT", "8000"))

    print(f"cpmup: paste or upload a Directory.Packages.props at http://{host}:{port}")
    print(f"Check/update API (POST /api/check, /api/update, /api/upload): http://{host}:{port}/docs")
    print("Package sources: nuget.org V3 feed")

    uvicorn.run(
        "apps.web.main:app",
        host=host,
        port=port,
        reload=True,
        reload_dirs=["apps", "cpmup"]
    )
