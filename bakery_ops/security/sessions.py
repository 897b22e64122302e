from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from bakery_ops.auth import Principal, Role
from bakery_ops.config import settings
from bakery_ops.dates import utc_now
from bakery_ops.models import User, WebSession

AUTH_EXEMPT_PATHS = {'/health', '/docs', '/openapi.json'}


def _session_expiry() -> datetime:
    return utc_now() + timedelta(minutes=settings.session_ttl_minutes)


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def bearer_token(request: Request) -> str | None:
    header = request.headers.get('authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def load_principal_from_token(db: Session, token: str | None) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(WebSession, User)
        .join(User, User.id == WebSession.user_id)
        .where(WebSession.token == token)
    ).one_or_none()
    if not row:
        return None

    web_session, user = row
    now = utc_now()
    if web_session.revoked_at is not None or _aware(web_session.expires_at) <= now:
        return None

    web_session.last_seen_at = now
    web_session.expires_at = _session_expiry()
    return Principal(
        id=user.id,
        username=user.username,
        role=Role(user.role),
        company_id=user.company_id,
        active=user.active,
    )


def install_auth_session_middleware(app: FastAPI, session_factory) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        with session_factory() as db:
            request.state.principal = load_principal_from_token(db, bearer_token(request))
            db.commit()

        if request.url.path not in AUTH_EXEMPT_PATHS and request.state.principal is None:
            return JSONResponse({'detail': 'Not authenticated'}, status_code=401)

        return await call_next(request)
