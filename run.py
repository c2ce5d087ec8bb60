import os

import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    # Each worker loads its own copy of the reference data and keeps its
    # own overlay cache; Supabase calls already run on the thread pool.
    workers = int(os.environ.get("WEB_CONCURRENCY", 1))
    uvicorn.run(
        "buildpass.main:app",
        host="0.0.0.0",
        port=port,
        workers=workers,
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
    )
