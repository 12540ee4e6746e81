"""FastAPI application serving the cancellable step stream."""

from fastapi import FastAPI

from .routes import tasks

app = FastAPI(title="stepstream", docs_url=None, redoc_url=None)

app.include_router(tasks.router)


@app.get("/")
async def index():
    """Describe the service endpoints."""
    return {
        "name": "stepstream",
        "endpoints": {
            "stream": "/api/slow",
            "cancel": "/api/slow/{task_id}/cancel",
            "tasks": "/api/tasks",
        },
    }
