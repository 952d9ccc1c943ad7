"""Department lookups against the external identity source.

Reconciliation asks one question per run: "for these department ids, which
are active and what are they called?" Ids missing from the answer are
unknown, and unknown is never treated as inactive.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol

import httpx

from ..exceptions import ResolverUnavailableError

logger = logging.getLogger(__name__)

# Retry configuration for transient failures (connection errors, 5xx).
MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0  # seconds; exponential: 1s, 2s, 4s

DEPARTMENT_BATCH_PATH = "/api/departments/batch"


@dataclass(frozen=True)
class DepartmentInfo:
    is_active: bool
    name: Optional[str] = None


class IdentityResolver(Protocol):
    def resolve_departments(self, department_ids: List[str]) -> Dict[str, DepartmentInfo]:
        ...


class HttpIdentityResolver:
    """Sync client for the identity source's batch department endpoint.

    One ``resolve_departments`` call is one POST (plus retries). Any failure
    that survives the retries surfaces as ``ResolverUnavailableError``.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ) -> None:
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.retry_base_delay = retry_base_delay
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request_with_retry(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Execute an HTTP request with retry on transient failures.

        Retries on connection errors, timeouts and 5xx responses with
        exponential backoff. Client errors (4xx) are not retried.
        """
        last_exc: Exception | None = None

        for attempt in range(MAX_RETRIES):
            try:
                resp = self._client.request(method, path, **kwargs)
                if resp.status_code < 500:
                    resp.raise_for_status()
                    return resp
                # 5xx: retry
                last_exc = httpx.HTTPStatusError(
                    f"Server error {resp.status_code}",
                    request=resp.request,
                    response=resp,
                )
            except httpx.HTTPStatusError:
                raise
            except (httpx.ConnectError, httpx.TimeoutException) as exc:
                last_exc = exc

            if attempt < MAX_RETRIES - 1:
                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning(
                    "Request %s %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    method, path, attempt + 1, MAX_RETRIES, delay, last_exc,
                )
                time.sleep(delay)

        raise last_exc  # type: ignore[misc]

    def resolve_departments(self, department_ids: List[str]) -> Dict[str, DepartmentInfo]:
        """Resolve ids in one call. Maps to POST /api/departments/batch."""
        if not department_ids:
            return {}
        try:
            resp = self._request_with_retry(
                "POST", DEPARTMENT_BATCH_PATH, json={"department_ids": list(department_ids)},
            )
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ResolverUnavailableError(
                f"Department lookup failed for {len(department_ids)} ids", original_error=exc
            ) from exc
        return _parse_departments(payload)


def _parse_departments(payload: Any) -> Dict[str, DepartmentInfo]:
    """Accept either ``{"departments": [...]}`` or a bare list of records."""
    records = payload.get("departments", []) if isinstance(payload, dict) else payload
    if not isinstance(records, list):
        raise ResolverUnavailableError("Unexpected department payload shape")

    result: Dict[str, DepartmentInfo] = {}
    for record in records:
        if not isinstance(record, dict) or not record.get("id"):
            continue
        result[str(record["id"])] = DepartmentInfo(
            is_active=bool(record.get("is_active", record.get("isActive", False))),
            name=record.get("name") or record.get("department_name"),
        )
    return result


class StaticIdentityResolver:
    """In-memory directory of departments for development and tests.

    Every call is recorded in ``calls`` (one list of ids per call).
    """

    def __init__(self, departments: Optional[Dict[str, DepartmentInfo]] = None, fail: bool = False):
        self.departments: Dict[str, DepartmentInfo] = dict(departments or {})
        self.fail = fail
        self.calls: List[List[str]] = []
        self._lock = threading.Lock()

    def set(self, department_id: str, is_active: bool, name: Optional[str] = None) -> None:
        with self._lock:
            self.departments[department_id] = DepartmentInfo(is_active=is_active, name=name)

    def forget(self, ids: Iterable[str]) -> None:
        with self._lock:
            for department_id in ids:
                self.departments.pop(department_id, None)

    def resolve_departments(self, department_ids: List[str]) -> Dict[str, DepartmentInfo]:
        with self._lock:
            self.calls.append(list(department_ids))
            if self.fail:
                raise ResolverUnavailableError("Static identity source configured to fail")
            return {
                department_id: self.departments[department_id]
                for department_id in department_ids
                if department_id in self.departments
            }


def build_identity_resolver(settings) -> IdentityResolver:
    """The resolver the configured environment calls for.

    An empty ``identity_api_url`` yields an empty static directory, under
    which every id is unknown and no drift is ever flagged.
    """
    if settings.identity_api_url:
        return HttpIdentityResolver(
            base_url=settings.identity_api_url,
            token=settings.identity_api_token,
            timeout=settings.identity_api_timeout,
        )
    logger.warning("IDENTITY_API_URL not set; using an empty static department directory")
    return StaticIdentityResolver()
