"""
Common decorators for the spatial workflows package.
"""
import time
import logging
import functools
import traceback
from typing import Any, Callable, Optional, TypeVar, cast

from .exceptions import SpatialWorkflowError

F = TypeVar('F', bound=Callable[..., Any])
logger = logging.getLogger(__name__)


def handle_errors(func: F) -> F:
    """
    Decorator for handling errors at I/O boundaries.

    Exceptions that are already SpatialWorkflowError subclasses propagate
    unchanged; anything else is logged and wrapped in a SpatialWorkflowError
    carrying the original exception.

    Args:
        func: Function to decorate.

    Returns:
        Decorated function.
    """
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except SpatialWorkflowError:
            raise
        except Exception as e:
            func_name = func.__name__
            module_name = func.__module__
            tb = traceback.format_exc()

            logger.error(f"Error in {module_name}.{func_name}: {str(e)}\n{tb}")

            raise SpatialWorkflowError(
                f"Error in {module_name}.{func_name}: {str(e)}",
                original_error=e
            ) from e

    return cast(F, wrapper)


def performance_tracker(name: Optional[str] = None, level: str = "debug") -> Callable[[F], F]:
    """Track function execution time."""
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            func_name = name or func.__name__
            start_time = time.time()

            try:
                result = func(*args, **kwargs)
                elapsed = time.time() - start_time
                log_method = getattr(logger, level.lower(), logger.debug)
                log_method(f"{func_name} completed in {elapsed:.3f} seconds")
                return result
            except Exception as e:
                elapsed = time.time() - start_time
                logger.debug(f"{func_name} failed after {elapsed:.3f} seconds: {str(e)}")
                raise

        return cast(F, wrapper)
    return decorator
