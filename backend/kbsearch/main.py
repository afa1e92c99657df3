import sys
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from kbsearch.config import get_settings
from kbsearch.core.workspace import Workspace
from kbsearch.api import chat, documents, system


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting Knowledge Search backend...")
    logger.info(
        "Agent {} at {}, knowledge base {} at {}",
        settings.agent_id, settings.agent_base_url, settings.rag_id, settings.rag_base_url,
    )

    async with httpx.AsyncClient(timeout=settings.request_timeout) as client:
        app.state.workspace = Workspace.from_settings(settings, client=client)
        await app.state.workspace.start()
        logger.info("Knowledge Search backend ready")
        yield
        app.state.workspace = None

    logger.info("Knowledge Search backend shut down")


app = FastAPI(
    title="Knowledge Search API",
    version=system.VERSION,
    description="Conversational search over an external RAG knowledge base",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router)
app.include_router(documents.router)
app.include_router(system.router)


@app.get("/")
async def root():
    return {"message": "Knowledge Search API", "version": system.VERSION, "docs": "/docs"}
