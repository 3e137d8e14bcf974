"""Structured lifecycle events for chunking and embedding runs."""

from __future__ import annotations

import logging
import time
import traceback
from contextlib import contextmanager
from typing import Any, Iterator, Optional

LOGGER = logging.getLogger("ragchunker.telemetry")


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    tenant_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if tenant_id:
        event["tenant_id"] = tenant_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_chunking_event(
    *,
    strategy: str,
    text_length: int,
    total_chunks: int,
    total_tokens: int,
    duration_ms: float,
    error: BaseException | None = None,
) -> None:
    details = {
        "strategy": strategy,
        "text_length": text_length,
        "total_chunks": total_chunks,
        "total_tokens": total_tokens,
    }
    level = "error" if error else "info"
    log_event(LOGGER, "chunking.document", level=level, duration_ms=duration_ms, details=details, exc=error)


def emit_embeddings_event(
    *,
    model: str,
    tenant_id: str,
    count: int,
    cache_hits: int,
    cache_misses: int,
    total_tokens: int,
    duration_ms: float,
    errors: list[str] | None = None,
) -> None:
    lookups = cache_hits + cache_misses
    details = {
        "model": model,
        "count": count,
        "cache_hits": cache_hits,
        "cache_misses": cache_misses,
        "cache_hit_rate": round(cache_hits * 100.0 / lookups, 2) if lookups else None,
        "total_tokens": total_tokens,
        "errors": errors or [],
        "per_item_ms": round(duration_ms / count, 3) if count else None,
    }
    level = "error" if errors else "info"
    log_event(LOGGER, "embeddings.compute", level=level, tenant_id=tenant_id, duration_ms=duration_ms, details=details)


def emit_cache_event(step: str, *, error: BaseException | None = None, **details: Any) -> None:
    level = "warning" if error else "info"
    log_event(LOGGER, f"embedding_cache.{step}", level=level, details=details, exc=error)


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", level="debug", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            level="debug",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )
