"""
Standardized response utilities
"""

from typing import Any, Optional
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.errors import EventFlowError, UpstreamError, ValidationError
from app.schemas.common import StandardResponse, ErrorResponse

def success_response(
    message: str,
    data: Any = None,
    status_code: int = 200
) -> JSONResponse:
    """Create standardized success response"""
    response = StandardResponse(
        success=True,
        message=message,
        data=data
    )
    return JSONResponse(
        content=jsonable_encoder(response),
        status_code=status_code
    )

def error_response(
    message: str,
    error_code: Optional[str] = None,
    details: Any = None,
    status_code: int = 400
) -> JSONResponse:
    """Create standardized error response"""
    response = ErrorResponse(
        message=message,
        error_code=error_code,
        details=details
    )
    return JSONResponse(
        content=jsonable_encoder(response),
        status_code=status_code
    )

def app_error_response(error: EventFlowError) -> JSONResponse:
    """Map an application error onto the error envelope"""
    details = None
    if isinstance(error, ValidationError):
        details = {"fields": error.fields}
    elif isinstance(error, UpstreamError) and error.upstream_status is not None:
        details = {"upstream_status": error.upstream_status}
    return error_response(
        message=error.message,
        error_code=error.error_code,
        details=details,
        status_code=error.status_code
    )
