"""
Timeout and retry wrapper for backend calls

Profile and metadata lookups go through resolve_with_timeout so a slow or
failing backend turns into a fallback value instead of a hung request.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

# Shared pool; a timed-out call keeps its worker until the call returns
_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix='resolve')


def resolve_with_timeout(func, *args, timeout=5, retries=0, fallback=None, label=None, **kwargs):
    """
    Call func(*args, **kwargs) with a per-attempt timeout.

    Args:
        func: Callable to run
        timeout: Seconds to wait for each attempt
        retries: Extra attempts after the first one
        fallback: Value returned when every attempt fails or times out
        label: Name used in log lines (defaults to the function name)

    Returns:
        func's result, or fallback
    """
    label = label or getattr(func, '__name__', 'call')
    attempts = max(0, retries) + 1

    for attempt in range(1, attempts + 1):
        future = _executor.submit(func, *args, **kwargs)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            print(f"[RESOLVE] {label} timed out after {timeout}s (attempt {attempt}/{attempts})")
        except Exception as e:
            print(f"[RESOLVE] {label} failed (attempt {attempt}/{attempts}): {e}")

    return fallback
