from __future__ import annotations

import os

import uvicorn

from chatcal.app import create_app

app = create_app()

if __name__ == "__main__":
  uvicorn.run("main:app",
              host=os.getenv("HOST", "127.0.0.1"),
              port=int(os.getenv("PORT", "8000")),
              reload=os.getenv("RELOAD", "0") == "1")
