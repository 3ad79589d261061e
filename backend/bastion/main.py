"""FastAPI application entrypoint."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from bastion.api import api_router
from bastion.core.config import Settings, get_settings
from bastion.core.container import build_services
from bastion.db.session import create_schema
from bastion.interfaces.discord_bot import create_discord_bot
from bastion.services.messenger import ChannelUnavailable
from bastion.services.scheduler import schedule_sweep_job, start_scheduler, stop_scheduler
from bastion.services.store import StoreUnavailable

logger = logging.getLogger(__name__)


async def _service_unavailable(_: Request, exc: Exception) -> JSONResponse:
    logger.error("Request failed on an unavailable dependency: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable, please try again later"},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = build_services(settings)
        await create_schema(services.engine)
        services.start()
        app.state.services = services

        schedule_sweep_job(
            settings.sweep_interval_seconds,
            services.account_store,
            services.accounts.limiter,
            [services.verification.pending, services.discord.requests, services.notices.notices],
        )
        start_scheduler()

        bot = None
        bot_task = None
        if settings.discord_token:
            bot = create_discord_bot(services.discord, settings.discord_command_prefix)
            bot_task = asyncio.create_task(bot.start(settings.discord_token))

        try:
            yield
        finally:
            if bot is not None:
                await bot.close()
                await asyncio.gather(bot_task, return_exceptions=True)
            stop_scheduler()
            await services.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_exception_handler(StoreUnavailable, _service_unavailable)
    app.add_exception_handler(ChannelUnavailable, _service_unavailable)
    app.include_router(api_router)
    return app


app = create_app()
