import time
import functools
from typing import Callable, Type, Tuple


def retry(on_exception: Tuple[Type[Exception], ...] = (Exception,), tries: int = 3, delay: float = 1.0, backoff: float = 2.0, logger=None):
    """Retry decorator with exponential backoff.

    Used for transient infrastructure errors (Redis connection, report file
    writes), never for the tests themselves.

    Example:
        @retry((redis.exceptions.ConnectionError,), tries=5, delay=1)
        def conectar(...):
            ...
    """
    def deco(func: Callable):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            mtries, mdelay = tries, delay
            last_exc = None
            while mtries > 0:
                try:
                    return func(*args, **kwargs)
                except on_exception as e:
                    last_exc = e
                    mtries -= 1
                    if mtries == 0:
                        break
                    if logger:
                        logger.warning(f"Retryable exception: {e}. Retrying in {mdelay}s (tries left: {mtries})")
                    time.sleep(mdelay)
                    mdelay *= backoff
            # If we get here, all retries failed
            if logger:
                logger.error(f"All retries failed for function {func.__name__}: {last_exc}")
            raise last_exc
        return wrapper
    return deco
