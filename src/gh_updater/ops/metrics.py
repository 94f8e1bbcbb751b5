from __future__ import annotations

from typing import Any

from opentelemetry import metrics

_meter = metrics.get_meter("gh_updater")


def _counter(name: str):
    try:
        return _meter.create_counter(name)
    except Exception:
        return None


_CACHE_HIT = _counter("gh_updater_cache_hit_total")
_CACHE_MISS = _counter("gh_updater_cache_miss_total")
_TOKEN_MINTED = _counter("gh_updater_installation_token_minted_total")
_GITHUB_REQUEST = _counter("gh_updater_github_requests_total")
_RATE_LIMITED = _counter("gh_updater_github_rate_limited_total")
_PACKAGE_OPERATION = _counter("gh_updater_package_operations_total")
_WEBHOOK_EVENT = _counter("gh_updater_webhook_events_total")


def inc(counter_name: str, value: int = 1, attributes: dict[str, Any] | None = None) -> None:
    attrs = attributes or {}
    counter = {
        "cache_hit": _CACHE_HIT,
        "cache_miss": _CACHE_MISS,
        "token_minted": _TOKEN_MINTED,
        "github_request": _GITHUB_REQUEST,
        "rate_limited": _RATE_LIMITED,
        "package_operation": _PACKAGE_OPERATION,
        "webhook_event": _WEBHOOK_EVENT,
    }.get(counter_name)
    if counter is None:
        return
    try:
        counter.add(value, attrs)
    except Exception:
        return
