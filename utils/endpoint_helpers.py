#!/usr/bin/env python3
"""
Endpoint Helpers
Utility functions shared by the API endpoints
"""

import logging
from typing import Dict, Any, Callable
from fastapi import Request
from services.exceptions import CatalogError
from utils.responses import success_response, error_response

logger = logging.getLogger(__name__)

def query_params(request: Request) -> Dict[str, Any]:
    """
    Collect query parameters; a repeated parameter becomes a list

    ?platform=Netflix&platform=Hotstar -> {"platform": ["Netflix", "Hotstar"]}
    """
    params = {}
    for key, value in request.query_params.multi_items():
        if key in params:
            existing = params[key]
            params[key] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            params[key] = value
    return params

def respond(message: str, producer: Callable, *args, status_code: int = 200, **kwargs):
    """
    Run a service call and wrap its result in the response envelope

    Domain errors map to their status code; anything else is logged and
    returned as a 500 envelope.
    """
    try:
        data = producer(*args, **kwargs)
    except CatalogError as e:
        logger.warning(f"{message} rejected: {e}")
        return error_response(str(e), error=getattr(e, 'details', None), status_code=e.status_code)
    except Exception as e:
        logger.error(f"Error in endpoint '{message}': {e}")
        return error_response(f"Error: {message}", error=str(e), status_code=500)
    return success_response(message, data, status_code=status_code)
