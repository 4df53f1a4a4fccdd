"""API key authentication and domain error translation shared by the routers"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import AppError
from app.core.logging_config import sanitize_log_value
from app.models.api_key import APIKey

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
API_KEY_QUERY = "api_key"


def get_current_organization_id(request: Request, db: Session = Depends(get_db)) -> str:
    """
    Dependency resolving the caller's organization from its API key

    Checks the X-API-Key header first, then the api_key query parameter.

    Raises:
        HTTPException: 401 if the key is missing, unknown, deleted or expired
    """
    key_value: Optional[str] = request.headers.get(API_KEY_HEADER) or request.query_params.get(API_KEY_QUERY)
    if not key_value:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required",
        )

    api_key = db.query(APIKey).filter(
        APIKey.key_value == key_value,
        APIKey.is_usable(),
    ).first()
    if api_key is None:
        logger.warning(
            "Rejected API key",
            extra={
                "event_type": "auth_rejected",
                "client_ip": request.client.host if request.client else None,
                "path": sanitize_log_value(request.url.path),
            }
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired API key",
        )

    return api_key.organization_id


def http_error(error: AppError) -> HTTPException:
    """Map a domain error to the HTTPException the client sees."""
    return HTTPException(status_code=error.status_code, detail=error.message)
