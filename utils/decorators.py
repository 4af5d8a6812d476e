#!/usr/bin/env python3
"""
Service Decorators
Provides decorators for automatic filter and session handling
"""

import logging
from functools import wraps
from typing import Callable, Dict, Any, Optional
from services.db import SessionLocal
from services.filter_builder import AnalyticsFilterBuilder
from filter_configs.filter_configs import get_filter_config

logger = logging.getLogger(__name__)

def with_session(func: Callable) -> Callable:
    """
    Decorator that opens a session when the caller does not pass one

    The decorated function receives it as the ``session`` keyword and the
    session is closed on exit only if the decorator opened it.
    """
    @wraps(func)
    def wrapper(*args, session=None, **kwargs):
        if session is not None:
            return func(*args, session=session, **kwargs)
        session = SessionLocal()
        try:
            return func(*args, session=session, **kwargs)
        finally:
            session.close()

    return wrapper

def with_filters(config_name: str, model_class):
    """
    Decorator for automatic filter handling

    Args:
        config_name: Name of filter configuration to use
        model_class: Model the filters apply to

    Returns:
        Decorated function called as func(params, builder, session=session),
        where params are the normalized request parameters and builder holds
        the filters built from them. The wrapper accepts (params=None, session=None).
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        @with_session
        def wrapper(params: Optional[Dict[str, Any]] = None, session=None):
            config = get_filter_config(config_name)
            if not config:
                logger.warning(f"No filter configuration found for {config_name}")

            params = AnalyticsFilterBuilder.parse_query_params(params)
            builder = AnalyticsFilterBuilder(model_class)
            builder.build_from_params(params, config)
            logger.debug(f"Applied filters for {func.__name__}: {builder.get_filters()}")

            return func(params, builder, session=session)

        return wrapper
    return decorator
