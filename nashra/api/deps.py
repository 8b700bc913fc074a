import hmac
import logging
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from nashra.container import Pipeline
from nashra.core.security import decode_token, has_permission

logger = logging.getLogger(__name__)


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline


def get_db(pipeline: Pipeline = Depends(get_pipeline)) -> Generator[Session, None, None]:
    db = pipeline.session_factory()
    try:
        yield db
    finally:
        db.close()


def bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


def verify_cron_secret(token: Optional[str] = Depends(bearer_token),
                       pipeline: Pipeline = Depends(get_pipeline)) -> None:
    secret = pipeline.settings.CRON_SECRET
    # no configured secret means the endpoint is closed
    if not secret or token is None or not hmac.compare_digest(token.encode(), secret.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_token_payload(token: Optional[str] = Depends(bearer_token)) -> dict:
    if token is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    payload = decode_token(token)
    if payload is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return payload


def require_admin(payload: dict = Depends(get_token_payload)) -> dict:
    if not has_permission(payload.get("role"), "admin"):
        logger.warning("Non-admin %s attempted an admin action", payload.get("email"))
        raise HTTPException(status_code=403, detail="Forbidden")
    return payload
