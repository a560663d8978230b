"""Logging setup and optional OpenTelemetry spans.

Spans are only created after ``instrument()``; until then every span
helper yields ``None`` and the ``record_*`` helpers do nothing.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None

LOG_FORMAT = "%(asctime)s:%(name)s:%(levelname)s:%(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: int = logging.INFO, log_file: str | None = None,
) -> None:
    """Route ``notestream`` logs to stderr and, optionally, a file.

    Intended for scripts and tests; an embedding application usually
    configures logging itself.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
    )


def instrument(*, tracer_name: str = "notestream") -> None:
    """Start emitting spans for ``stream()`` sessions and recovery attempts.

    Set up a TracerProvider first, otherwise every span is dropped::

        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider

        trace.set_tracer_provider(TracerProvider())

        from notestream.instrumentation import instrument
        instrument()

    Raises:
        ImportError: ``opentelemetry-api`` is missing; install the
            ``notestream[otel]`` extra.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "notestream tracing needs opentelemetry-api; "
            "pip install notestream[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured; notestream spans "
            "will be discarded"
        )
    else:
        logger.info(f"notestream tracing enabled ({tracer_name})")


def uninstrument() -> None:
    """Stop emitting spans."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def stream_span(stream_id: str):
    """Wrap a StreamingManager.stream() session in a span."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"stream {stream_id}",
        attributes={"notestream.stream.id": stream_id},
    ) as span:
        yield span


@asynccontextmanager
async def recovery_span(checkpoint_id: str, attempt: int):
    """Wrap a resume-callback invocation in a ``recover`` span."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"recover {checkpoint_id}",
        attributes={
            "notestream.checkpoint.id": checkpoint_id,
            "notestream.recovery.attempt": attempt,
        },
    ) as span:
        yield span


def record_stream_stats(span, chunks: int, characters: int) -> None:
    """Set chunk and character counts on a stream span."""
    if span is None:
        return
    span.set_attribute("notestream.stream.chunks", chunks)
    span.set_attribute("notestream.stream.characters", characters)


def record_error(span, exception: BaseException) -> None:
    """Mark *span* failed with *exception*; ignored when tracing is off."""
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute(
        "error.type", type(exception).__qualname__
    )
