"""Run the tool dispatch API with uvicorn."""
import os

import uvicorn

from tool_dispatch.main import app

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )
