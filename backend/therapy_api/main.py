# /backend/therapy_api/main.py

from __future__ import annotations
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from therapy_api.config import CORS_ORIGINS
from therapy_api.db import create_tables
from therapy_api.errors import register_error_handlers
from therapy_api.logging_setup import configure_logging, log_requests
from therapy_api.api.routers import auth, mood, activity, chat, workflows
from therapy_api.services.events import EventBus
from therapy_api.services.openai_chat import ChatModel

configure_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # 앱 시작 시
    await create_tables()
    app.state.chat_model = ChatModel()
    app.state.event_bus = EventBus()
    await app.state.event_bus.start()
    logger.info("Server started; workflow runner at /api/inngest")
    try:
        yield
    finally:
        # 앱 종료 시
        await app.state.event_bus.stop()

app = FastAPI(
    title="Therapy Chat API",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(log_requests)

register_error_handlers(app)

app.include_router(auth.router)
app.include_router(chat.router)
app.include_router(mood.router)
app.include_router(activity.router)
app.include_router(workflows.router)


@app.get("/health")
async def health():
    return {"status": "ok", "message": "Server is running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("therapy_api.main:app", host="0.0.0.0", port=3001)
