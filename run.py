"""
Start the Boreal API with uvicorn.
Usage: python3 run.py   (from the project root; PORT defaults to 5000)
"""
import os

import uvicorn

from config import settings

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "5000")),
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
