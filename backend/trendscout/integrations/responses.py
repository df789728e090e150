from __future__ import annotations

from typing import Any

import httpx

from trendscout.errors import PipelineError, UpstreamFetchError


def json_body(
    resp: httpx.Response,
    source: str,
    *,
    error: type[PipelineError] = UpstreamFetchError,
    expect: type | tuple[type, ...] = dict,
) -> Any:
    """Decode a 2xx response body, raising `error` for HTML pages and other non-JSON replies."""
    try:
        data = resp.json()
    except ValueError as exc:
        raise error(f"{source} returned a non-JSON body ({resp.status_code}): {resp.text[:200]}") from exc
    if not isinstance(data, expect):
        raise error(f"{source} returned unexpected JSON ({type(data).__name__})")
    return data
