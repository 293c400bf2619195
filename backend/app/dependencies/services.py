# app/dependencies/services.py
"""
Builds the identity services from the process settings. This is the only
place that reads ``app.core.config.settings``; the services themselves take
explicit config objects. Tests override these with ``dependency_overrides``.
"""
from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from app.auth.handoff import HandoffRouter
from app.auth.tokens import TokenConfig, TokenIssuer
from app.core.config import Settings, settings
from app.core.database import get_db
from app.services.email import build_mail_sender
from app.services.identity_lifecycle import IdentityLifecycle
from app.services.mail_delivery import MailDispatcher


def get_settings() -> Settings:
    return settings


def get_token_issuer(app_settings: Settings = Depends(get_settings)) -> TokenIssuer:
    return TokenIssuer(TokenConfig.from_settings(app_settings))


def get_mail_dispatcher(app_settings: Settings = Depends(get_settings)) -> MailDispatcher:
    return MailDispatcher(build_mail_sender(app_settings), mode=app_settings.MAIL_DELIVERY_MODE)


def get_handoff_router(app_settings: Settings = Depends(get_settings)) -> HandoffRouter:
    return HandoffRouter.from_settings(app_settings)


def get_identity_lifecycle(
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    tokens: TokenIssuer = Depends(get_token_issuer),
    dispatcher: MailDispatcher = Depends(get_mail_dispatcher),
    handoff: HandoffRouter = Depends(get_handoff_router),
) -> IdentityLifecycle:
    return IdentityLifecycle(
        db,
        settings=app_settings,
        tokens=tokens,
        dispatcher=dispatcher,
        handoff=handoff,
    )
