"""FastAPI application exposing the Presence Board admin API and hosting the bot."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, status

from .bot import TelegramBot
from .config import Settings, load_settings
from .db import Database
from .gateway import TelegramGateway
from .logging_setup import configure_logging
from .service import PresenceService
from .telegram_client import TelegramClient


def create_app(settings: Optional[Settings] = None, service: Optional[PresenceService] = None) -> FastAPI:
    """Build the app; without ``service`` it wires the Telegram bot and timers too."""

    settings = settings or load_settings()
    client: Optional[TelegramClient] = None
    bot: Optional[TelegramBot] = None
    if service is None:
        client = TelegramClient(settings.telegram_bot_token, poll_timeout=settings.poll_timeout_seconds)
        service = PresenceService(settings, Database(settings.database_path), TelegramGateway(client))
        bot = TelegramBot(client, service)

    async def verify_api_key(x_api_key: str = Header(..., alias="X-API-Key")) -> None:
        if x_api_key != settings.api_key:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid api key")

    def parse_day(value: Optional[str]) -> date:
        if not value:
            return service.clock.today()
        try:
            return datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD") from exc

    app = FastAPI(title="Presence Board API", version="1.0.0")

    @app.on_event("startup")
    async def startup_event() -> None:  # pragma: no cover - io bound
        configure_logging(settings.log_level)
        await service.on_startup_reconcile()
        service.start()
        if bot is not None:
            bot.start()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - io bound
        if bot is not None:
            await bot.stop()
        await service.stop()
        if client is not None:
            await client.close()

    def get_service() -> PresenceService:
        return service

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/chats")
    async def list_chats(
        _: None = Depends(verify_api_key),
        svc: PresenceService = Depends(get_service),
    ) -> dict[str, object]:
        return {"chats": svc.list_chats()}

    @app.get("/api/chats/{chat_id}/entries")
    async def get_entries(
        chat_id: int,
        start: Optional[str] = None,
        end: Optional[str] = None,
        _: None = Depends(verify_api_key),
        svc: PresenceService = Depends(get_service),
    ) -> dict[str, object]:
        first_day = parse_day(start)
        last_day = parse_day(end) if end else first_day
        if last_day < first_day:
            raise HTTPException(status_code=400, detail="end must not be before start")
        window_start = svc.clock.start_of_day(first_day)
        window_end = svc.clock.start_of_day(last_day + timedelta(days=1)) - timedelta(microseconds=1)
        return {
            "chat_id": chat_id,
            "start": first_day.isoformat(),
            "end": last_day.isoformat(),
            "entries": svc.get_entries(chat_id, window_start, window_end),
        }

    @app.get("/api/chats/{chat_id}/summary")
    async def get_day_summary(
        chat_id: int,
        date_param: Optional[str] = Query(None, alias="date"),
        _: None = Depends(verify_api_key),
        svc: PresenceService = Depends(get_service),
    ) -> dict[str, object]:
        return svc.get_day_summary(chat_id, parse_day(date_param))

    @app.get("/api/chats/{chat_id}/report")
    async def get_month_report(
        chat_id: int,
        year: Optional[int] = Query(None, ge=1, le=9999),
        month: Optional[int] = Query(None, ge=1, le=12),
        _: None = Depends(verify_api_key),
        svc: PresenceService = Depends(get_service),
    ) -> dict[str, object]:
        today = svc.clock.today()
        return svc.get_month_report(
            chat_id, today.year if year is None else year, today.month if month is None else month
        )

    @app.post("/api/chats/{chat_id}/refresh")
    async def refresh_board(
        chat_id: int,
        _: None = Depends(verify_api_key),
        svc: PresenceService = Depends(get_service),
    ) -> dict[str, object]:
        outcome = await svc.boards.refresh_board(chat_id)
        return {"chat_id": chat_id, "outcome": outcome.value}

    return app


__all__ = ["create_app"]
