from typing import Any, List, Optional
from datetime import datetime, timezone

from fastapi import HTTPException

from safety_audit.repository import DataAccessError
from safety_audit.schemas import ApiResponse, ApiMeta, ApiError


def wrap_response(data: Any, meta: Optional[dict] = None, errors: Optional[List[ApiError]] = None) -> ApiResponse:
    """Wraps data in the standardized API envelope."""
    return ApiResponse(
        data=data,
        meta=ApiMeta(
            timestamp=datetime.now(timezone.utc),
            pagination=meta.get("pagination") if meta else None
        ),
        errors=errors
    )


def raise_data_error(error: DataAccessError):
    """Translate a failed query into a 500 without leaking query details."""
    raise HTTPException(
        status_code=500,
        detail={
            "code": "DATA_ACCESS_ERROR",
            "message": f"Could not {error.operation}",
        }
    )
