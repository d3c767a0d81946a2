from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator

from fastapi import FastAPI

from party_planner.api.chat_service import ChatService
from party_planner.core.config import ApiSettings


@lru_cache(maxsize=1)
def get_chat_service() -> ChatService:
    settings = ApiSettings.from_env()
    return ChatService(settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    try:
        yield
    finally:
        if get_chat_service.cache_info().currsize:
            await get_chat_service().close()
