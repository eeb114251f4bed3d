"""Metrics hook protocol and no-op default implementation.

Uploads and transformations are billed by Cloudinary, so cloudimg counts
every remote call it makes and every one it avoids.  By default a
:class:`NoopMetricsHook` is used; supply any object satisfying
:class:`MetricsHook` through ``CloudImageConfig(metrics=...)`` to route
the data points to StatsD, Prometheus, Datadog, etc.

Emitted metric names:

* ``cloudimg.requests_total``             -- counter
* ``cloudimg.request_duration_ms``        -- timing
* ``cloudimg.upload_success_total``       -- counter
* ``cloudimg.upload_failure_total``       -- counter
* ``cloudimg.upload_skipped_total``       -- counter
* ``cloudimg.placeholder_fetch_total``    -- counter
* ``cloudimg.assets_in_flight``           -- gauge
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    All methods accept an optional *tags* dict whose keys and values are
    strings.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...


class NoopMetricsHook:
    """Default metrics implementation that silently discards all data points.

    Used when the caller does not supply a backend, so metrics call-sites
    never need ``if self._metrics is not None`` guards.
    """

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass


def resolve_metrics(metrics: Any | None) -> MetricsHook:
    """Return *metrics*, or a :class:`NoopMetricsHook` when it is ``None``."""
    return metrics if metrics is not None else NoopMetricsHook()
