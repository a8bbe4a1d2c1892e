from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from config import Settings
from db import make_engine, make_session_factory
from notifications import NotificationService, SmtpMailer
from security import ActionTokens


@dataclass
class AppContext:
    """Everything a request needs, built once at startup."""
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    tokens: ActionTokens
    notifier: NotificationService


def build_context(settings: Optional[Settings] = None, mailer=None) -> AppContext:
    settings = settings or Settings.from_env()
    engine = make_engine(settings.database_url)
    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=make_session_factory(engine),
        tokens=ActionTokens(settings.action_secret, settings.action_token_ttl),
        notifier=NotificationService(settings, mailer or SmtpMailer(settings)),
    )


def get_ctx(request: Request) -> AppContext:
    return request.app.state.ctx
