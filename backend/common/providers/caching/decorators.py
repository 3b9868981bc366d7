import functools
import hashlib
import json
from typing import Callable, Optional, Type

from pydantic import BaseModel

from common.core.otel_axiom_exporter import get_logger
from .factory import get_cache_provider

logger = get_logger(__name__)


def _is_method_call(func: Callable, args: tuple) -> bool:
    return bool(args) and hasattr(args[0], func.__name__)


def _default_key(func: Callable, args: tuple, kwargs: dict) -> str:
    if _is_method_call(func, args):
        owner = args[0].__class__.__name__
        key_args = args[1:]
    else:
        owner = func.__module__.split(".")[-1]
        key_args = args

    if not key_args and not kwargs:
        return f"{owner}:{func.__name__}"

    payload = json.dumps(
        {"args": key_args, "kwargs": dict(sorted(kwargs.items()))},
        sort_keys=True,
        default=str,
    )
    return f"{owner}:{func.__name__}:{hashlib.md5(payload.encode()).hexdigest()[:8]}"


def _call_key_generator(
    key_generator: Callable, func: Callable, args: tuple, kwargs: dict
) -> str:
    call_args = args[1:] if _is_method_call(func, args) else args
    return key_generator(*call_args, **kwargs)


def _encode(model_type: Type, result):
    if result is None or not issubclass(model_type, BaseModel):
        return result
    if isinstance(result, list):
        return [item.model_dump(mode="json") for item in result]
    return result.model_dump(mode="json")


def _decode(model_type: Type, cached):
    if not issubclass(model_type, BaseModel):
        return cached
    if isinstance(cached, list):
        return [model_type.model_validate(item) for item in cached]
    return model_type.model_validate(cached)


def cache(model_type: Type, ttl: int = 3600, key_generator: Optional[Callable] = None):
    """
    Cache decorator for async methods/functions.

    A cache failure never fails the call: the wrapped function runs and the
    error is logged.

    Args:
        model_type: Pydantic model (or plain type) the result is rebuilt as
        ttl: Time to live in seconds
        key_generator: Builds the key from the call's arguments (``self`` excluded)
    """

    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            cache_key = None
            try:
                if key_generator:
                    cache_key = _call_key_generator(key_generator, func, args, kwargs)
                else:
                    cache_key = _default_key(func, args, kwargs)
                cached = await get_cache_provider().get(cache_key)
                if cached is not None:
                    logger.debug(f"Cache hit for key: {cache_key}")
                    return _decode(model_type, cached)
            except Exception as e:
                logger.warning(f"Cache read failed for {func.__name__}: {e}")

            result = await func(*args, **kwargs)

            if cache_key and result is not None:
                try:
                    await get_cache_provider().set(
                        cache_key, _encode(model_type, result), ttl
                    )
                except Exception as e:
                    logger.warning(f"Cache set failed for key {cache_key}: {e}")

            return result

        return wrapper

    return decorator
