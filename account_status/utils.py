import functools
import inspect
import time

from loguru import logger


def logged_operation(func):
    """
    A decorator that logs async operation entry, exit, and exceptions.

    Features:
    - Logs operation name and parameters before execution
    - Logs the exception type and message, then re-raises it unchanged
    - Logs elapsed time after successful execution
    - Preserves function metadata and return values
    """
    sig = inspect.signature(func)

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        func_name = func.__qualname__

        bound_args = sig.bind(*args, **kwargs)
        bound_args.apply_defaults()
        params = {k: v for k, v in bound_args.arguments.items() if k != "self"}

        logger.info(f"Entering {func_name} with params: {params}")
        started = time.perf_counter()

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            logger.info(f"{func_name} raised {type(e).__name__}: {e}")
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{func_name} done in {elapsed_ms:.1f}ms")
        return result

    return wrapper
