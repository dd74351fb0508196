from fastapi import FastAPI

from app.config import settings
from app.logging_config import setup_logging
from app.routers import webhook

setup_logging(settings.log_level)

app = FastAPI(
    title="Lark Task Assistant",
    description="Lark bot that turns chat and voice messages into calendar events",
    version="0.1.0",
    debug=settings.debug,
)

app.include_router(webhook.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
