"""
Observability for the Navlungo pricing service

Every public quote-flow operation is wrapped so we can see, after the fact:
- which step ran, with what arguments
- what it returned (or what it raised)
- how long it took

This is what lets us tell "the portal returned nothing" apart from
"we never got past the login wait".

Dual instrumentation:
1. Local JSONL event log - full detail for debugging
2. LangWatch spans - for dashboard visualization
"""

import time
import traceback
from functools import wraps
from typing import Any, Callable

import langwatch


def _describe(value: Any) -> Any:
    """Make step arguments/results JSON friendly for span + log payloads."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return repr(value)


def observe_step(func: Callable) -> Callable:
    """
    Decorator to log executions of an async quote-flow method.

    Logs to the event logger with:
    - step: ClassName.method_name
    - args: positional/keyword arguments (described, not raw objects)
    - result: return value (truncated)
    - duration_ms: execution time

    Usage:
        class NavlungoClient:
            @observe_step
            async def get_prices(self, request): ...
    """
    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        # Import here to avoid circular imports
        from navlungo_pricing.event_logger import get_logger

        step_name = f"{self.__class__.__name__}.{func.__name__}"
        logger = get_logger()
        start = time.time()

        call_args = {f"arg{i}": _describe(a) for i, a in enumerate(args)}
        call_args.update({k: _describe(v) for k, v in kwargs.items()})

        print(f"[Observability] Step start: {step_name}")

        with langwatch.span(type="tool", name=step_name) as span:
            try:
                span.update(input={"args": call_args})

                result = await func(self, *args, **kwargs)
                duration_ms = (time.time() - start) * 1000

                span.update(output={"result": str(_describe(result))[:500]})

                logger.log_step(
                    step=step_name,
                    args=call_args,
                    result=_describe(result),
                    duration_ms=duration_ms
                )

                print(f"[Observability] Step complete: {step_name} ({duration_ms:.1f}ms)")
                return result

            except Exception as e:
                duration_ms = (time.time() - start) * 1000

                span.update(error=str(e))

                logger.log_step_error(
                    step=step_name,
                    args=call_args,
                    error=str(e),
                    traceback_str=traceback.format_exc(),
                    duration_ms=duration_ms
                )

                print(f"[Observability] Step ERROR: {step_name} - {e}")
                raise

    return wrapper
