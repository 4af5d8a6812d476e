"""
Response envelope shared by all API endpoints:
success -> {"success": true, "message", "data", "timestamp"}
error   -> {"success": false, "message", "error"?, "timestamp"}
"""
from datetime import datetime, timezone
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def success_response(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    body = {
        "success": True,
        "message": message,
        "data": data,
        "timestamp": _timestamp()
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def error_response(message: str, error: Any = None, status_code: int = 500) -> JSONResponse:
    body = {
        "success": False,
        "message": message,
        "timestamp": _timestamp()
    }
    if error:
        body["error"] = error
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))
