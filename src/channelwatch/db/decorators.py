"""Database operation decorators for consistent error handling.

Every store method is wrapped so that any ``SQLAlchemyError`` surfaces as a
``DatabaseOperationError`` carrying the ids of the affected rows.
"""

from collections.abc import Awaitable, Callable
from functools import wraps
import inspect
import sys
from types import NoneType, UnionType
from typing import Any, Union, get_args, get_origin, get_type_hints

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import DatabaseOperationError

_ID_TYPES = (int, str)


def _unwrap_optional(annotation: Any) -> Any:
    """Return ``T`` for ``T | None``; other annotations are returned as-is."""
    if get_origin(annotation) in (Union, UnionType):
        non_none = [arg for arg in get_args(annotation) if arg is not NoneType]
        if len(non_none) == 1:
            return non_none[0]
    return annotation


def _attribute_annotation(cls: type, attr_name: str) -> Any:
    """Resolve the annotation of ``cls.attr_name``.

    Raises:
        TypeError: If the class has no such annotation or it can't be resolved.
    """
    raw = getattr(cls, "__annotations__", {}).get(attr_name)
    if raw is None:
        raise TypeError(f"{cls.__name__} has no annotation for '{attr_name}'")
    if not isinstance(raw, str):
        return raw
    module = sys.modules.get(cls.__module__)
    try:
        return eval(raw, module.__dict__ if module else {})
    except (NameError, AttributeError, SyntaxError) as e:
        raise TypeError(
            f"Failed to resolve annotation '{raw}' in {cls.__name__}.{attr_name}"
        ) from e


def _validate_id_path(
    func_name: str,
    sig: inspect.Signature,
    resolved_hints: dict[str, Any],
    path: str,
) -> None:
    """Check at decoration time that a dotted path points at an id value.

    Args:
        func_name: The name of the function being decorated.
        sig: The signature of the function.
        resolved_hints: The resolved type hints for the function.
        path: The dotted attribute path, e.g. ``"channel.id"``.

    Raises:
        TypeError: If the parameter is missing, a part of the path has no
            annotation, or the final attribute is not an int or str.
    """
    base_param_name, *attr_path = path.split(".")
    if base_param_name not in sig.parameters:
        raise TypeError(
            f"Decorator on '{func_name}' specifies path '{path}', "
            f"but the function has no parameter named '{base_param_name}'."
        )

    current_type = resolved_hints.get(base_param_name)
    for attr_name in attr_path:
        if current_type is None:
            raise TypeError(f"In path '{path}', '{attr_name}' has no annotation.")
        current_type = _attribute_annotation(_unwrap_optional(current_type), attr_name)

    if _unwrap_optional(current_type) not in _ID_TYPES:
        raise TypeError(
            f"The final attribute in path '{path}' must be an int or str id, "
            f"but found '{current_type}' in '{func_name}'."
        )


def _extract_value_from_path(
    bound_args: inspect.BoundArguments, path: str
) -> int | str | None:
    base_param_name, *attr_path = path.split(".")
    current_value = bound_args.arguments.get(base_param_name)
    for attr in attr_path:
        if current_value is None:
            break
        current_value = getattr(current_value, attr, None)
    return current_value if isinstance(current_value, _ID_TYPES) else None


def _base_db_error_handler[**P, T](
    operation: str,
    id_paths: dict[str, str] | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Wrap a coroutine so SQLAlchemy errors become DatabaseOperationError.

    Args:
        operation: Description of the operation for error messages.
        id_paths: Maps the keyword of the raised error (e.g. ``"channel_id"``)
            to the argument path the value is read from (e.g. ``"channel.id"``).

    Returns:
        A decorator that wraps a function in SQLAlchemyError handling.
    """
    id_paths = id_paths or {}

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        try:
            sig = inspect.signature(func)
            resolved_hints = get_type_hints(func)
        except (TypeError, ValueError, NameError) as e:
            raise TypeError(
                f"Could not inspect the signature of {func.__name__}."
            ) from e

        for path in id_paths.values():
            _validate_id_path(func.__name__, sig, resolved_hints, path)

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except SQLAlchemyError as e:
                bound_args = sig.bind(*args, **kwargs)
                bound_args.apply_defaults()
                extracted_ids = {
                    id_name: _extract_value_from_path(bound_args, path)
                    for id_name, path in id_paths.items()
                }
                raise DatabaseOperationError(
                    f"Failed to {operation}", **extracted_ids
                ) from e

        return wrapper

    return decorator


def handle_db_errors[**P, T](
    operation: str,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for store operations without a specific row context."""
    return _base_db_error_handler(operation=operation)


def handle_channel_db_errors[**P, T](
    operation: str,
    channel_id_from: str = "channel_id",
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for store operations on one channel.

    Reports the channel id on the raised DatabaseOperationError.
    """
    return _base_db_error_handler(
        operation=operation, id_paths={"channel_id": channel_id_from}
    )


def handle_video_db_errors[**P, T](
    operation: str,
    video_id_from: str = "video_id",
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for store operations on one video.

    Reports the video id on the raised DatabaseOperationError.
    """
    return _base_db_error_handler(
        operation=operation, id_paths={"video_id": video_id_from}
    )
