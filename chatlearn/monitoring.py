# chatlearn/monitoring.py
"""
Timing helpers for the chat pipeline and upstream API calls.
"""

import functools
import time
from contextlib import contextmanager
from typing import Callable

from .logging_config import get_logger

logger = get_logger(__name__)

SLOW_OPERATION_MS = 2000


def track_async_time(operation_name: str = None):
    """
    Log the duration of an async function.

    Usage:
        @track_async_time("chat_pipeline")
        async def respond(...):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.time()
            op_name = operation_name or func.__name__

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Async operation failed: {op_name}",
                    extra={
                        "extra_data": {
                            "operation": op_name,
                            "execution_time_ms": int((time.time() - start_time) * 1000),
                            "error": str(e)
                        }
                    }
                )
                raise

            execution_time = (time.time() - start_time) * 1000
            logger.info(
                f"Async operation completed: {op_name}",
                extra={
                    "extra_data": {
                        "operation": op_name,
                        "execution_time_ms": int(execution_time),
                        "status": "success"
                    }
                }
            )
            if execution_time > SLOW_OPERATION_MS:
                logger.warning(
                    f"Slow async operation: {op_name}",
                    extra={"extra_data": {"operation": op_name, "execution_time_ms": int(execution_time)}}
                )
            return result

        return wrapper
    return decorator


@contextmanager
def track_operation(operation_name: str, **context_data):
    """
    Usage:
        with track_operation("upload_image", path=path):
            storage.upload(...)
    """
    start_time = time.time()
    try:
        yield
    except Exception as e:
        logger.error(
            f"Operation failed: {operation_name}",
            extra={
                "extra_data": {
                    "operation": operation_name,
                    "execution_time_ms": int((time.time() - start_time) * 1000),
                    "status": "failed",
                    "error": str(e),
                    **context_data
                }
            }
        )
        raise

    logger.debug(
        f"Operation completed: {operation_name}",
        extra={
            "extra_data": {
                "operation": operation_name,
                "execution_time_ms": int((time.time() - start_time) * 1000),
                "status": "success",
                **context_data
            }
        }
    )


@contextmanager
def track_external_api_call(service_name: str, operation: str, **metadata):
    """
    Usage:
        with track_external_api_call("OpenAI", "chat.completions", model="gpt-4o-mini"):
            response = await client.chat.completions.create(...)
    """
    start_time = time.time()

    logger.info(
        f"External API call: {service_name}.{operation}",
        extra={"extra_data": {"service": service_name, "operation": operation, **metadata}}
    )

    try:
        yield
    except Exception as e:
        logger.error(
            f"External API call failed: {service_name}.{operation}",
            extra={
                "extra_data": {
                    "service": service_name,
                    "operation": operation,
                    "execution_time_ms": int((time.time() - start_time) * 1000),
                    "status": "failed",
                    "error": str(e),
                    **metadata
                }
            }
        )
        raise

    execution_time = (time.time() - start_time) * 1000
    logger.info(
        f"External API call succeeded: {service_name}.{operation}",
        extra={
            "extra_data": {
                "service": service_name,
                "operation": operation,
                "execution_time_ms": int(execution_time),
                "status": "success",
                **metadata
            }
        }
    )
    if execution_time > SLOW_OPERATION_MS:
        logger.warning(
            f"Slow external API call: {service_name}.{operation}",
            extra={"extra_data": {"execution_time_ms": int(execution_time), **metadata}}
        )
