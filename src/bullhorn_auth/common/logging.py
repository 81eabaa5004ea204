"""
Structured logging helpers.

Context (cluster, api_url, step, ...) rides on records as `extra` fields so
the JSON formatter in logging_setup can emit it as keys. Error text is
passed through sanitize_error_message before it is attached.
"""

import functools
import inspect
import logging
from typing import Any, Callable, Dict, Optional, TypeVar

from bullhorn_auth.common.security import sanitize_error_message

F = TypeVar("F", bound=Callable[..., Any])

# Instance attributes copied onto every record logged through LoggedClass
CONTEXT_ATTRS = ("api_url", "cluster", "client_name")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, msg: str, **context: Any) -> None:
    """Emit msg at level with context as record attributes.

    Example:
        log_with_context(logger, logging.INFO, "Acquired Bullhorn session", cluster="emea")
    """
    logger.log(level, msg, extra=context)


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **context: Any,
) -> None:
    """
    Log exc under msg.

    BullhornError subclasses contribute their category as error_category.
    The exception text is redacted into error_message; tokens, codes and
    passwords never reach the record.
    """
    category = getattr(exc, "category", None)
    if context.get("error_category") is None and category is not None:
        context["error_category"] = getattr(category, "value", str(category))
    context["error_message"] = sanitize_error_message(str(exc))

    logger.log(
        level,
        msg,
        exc_info=exc if include_traceback else None,
        extra=context,
    )


def _extract_instance_context(obj: Any) -> Dict[str, Any]:
    context: Dict[str, Any] = {}
    for attr in CONTEXT_ATTRS:
        value = getattr(obj, attr, None)
        if value is not None:
            context[attr] = value
    return context


def logged_operation(
    level: int = logging.DEBUG,
    log_start: bool = False,
    operation_name: Optional[str] = None,
) -> Callable[[F], F]:
    """
    Log completion or failure of a method call as "<Class>.<op> completed|failed".

    Failures are logged at WARNING without traceback and re-raised unchanged.
    Works for both coroutine and plain methods.

    Args:
        level: Level of the start/completion records
        log_start: Also log "<Class>.<op> starting"
        operation_name: Name used instead of the method name
    """

    def decorator(func: F) -> F:
        def describe(self) -> tuple:
            logger = getattr(self, "_logger", None) or get_logger(type(self).__module__)
            return logger, f"{type(self).__name__}.{operation_name or func.__name__}"

        def failed(logger: logging.Logger, op: str, exc: Exception) -> None:
            log_exception(
                logger, exc, f"{op} failed", level=logging.WARNING, include_traceback=False
            )

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(self, *args, **kwargs):
                logger, op = describe(self)
                if log_start:
                    log_with_context(logger, level, f"{op} starting")
                try:
                    result = await func(self, *args, **kwargs)
                except Exception as e:
                    failed(logger, op, e)
                    raise
                log_with_context(logger, level, f"{op} completed")
                return result

            return async_wrapper  # type: ignore

        @functools.wraps(func)
        def sync_wrapper(self, *args, **kwargs):
            logger, op = describe(self)
            if log_start:
                log_with_context(logger, level, f"{op} starting")
            try:
                result = func(self, *args, **kwargs)
            except Exception as e:
                failed(logger, op, e)
                raise
            log_with_context(logger, level, f"{op} completed")
            return result

        return sync_wrapper  # type: ignore

    return decorator


class LoggedClass:
    """
    Mixin giving a class its own logger and context-aware log calls.

    The logger is named after the defining module plus log_component, e.g.
    bullhorn_auth.acquirer.acquirer. Records logged through _log and
    _log_exception carry the instance's api_url, cluster and client_name
    when set.

    Example:
        class SessionExpiryProbe(LoggedClass):
            log_component = "probe"
    """

    log_component: Optional[str] = None

    def __init__(self, *args, **kwargs):
        name = type(self).__module__
        if self.log_component:
            name = f"{name}.{self.log_component}"
        self._logger = get_logger(name)
        super().__init__(*args, **kwargs)

    def _log(self, level: int, msg: str, **extra: Any) -> None:
        log_with_context(
            self._logger, level, msg, **{**_extract_instance_context(self), **extra}
        )

    def _log_exception(
        self,
        exc: BaseException,
        msg: str,
        level: int = logging.ERROR,
        **extra: Any,
    ) -> None:
        log_exception(
            self._logger, exc, msg, level=level, **{**_extract_instance_context(self), **extra}
        )
