"""
Assessment Service Gateway.

All outbound HTTP calls to the assessment subsystem go through this class.
The journey engine only needs one question answered: "may this assessment
be linked to a phase?" (published and assignable).

  - Bearer token from ASSESSMENT_SERVICE_TOKEN
  - Retry: 1 extra attempt on network errors / 5xx
  - Timeout: ASSESSMENT_SERVICE_TIMEOUT seconds (default 10)
  - Local mode: when ASSESSMENT_SERVICE_URL is unset every assessment is
    treated as assignable (single-process deployments and tests)

Testability: pass a mock `session` to AssessmentGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

_RETRY_MAX = 1
_RETRY_BACKOFF_SECONDS = 1
_DEFAULT_TIMEOUT = 10

# Assessment states that may be attached to a journey phase.
ASSIGNABLE_STATES = frozenset({"PUBLISHED", "ACTIVE"})


class GatewayResult:
    """Structured return value from AssessmentGateway calls.

    Attributes:
        ok:          True if the call succeeded (HTTP 2xx + no exception).
        status_code: HTTP status code (None if network-level failure).
        data:        Parsed JSON response body, else None.
        error:       Human-readable error message or None.
        duration_ms: Round-trip latency in milliseconds.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: dict | None,
        error: str | None,
        duration_ms: int,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms


class AssessmentGateway:
    """Assessment subsystem REST gateway.

    Usage:
        from app.integrations.assessment_gateway import assessment_gateway
        if assessment_gateway.is_assignable("asm-42"): ...
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        base_url: str | None = None,
        token: str | None = None,
        timeout: int | None = None,
    ) -> None:
        self._session: requests.Session | None = session
        self._base_url = base_url
        self._token = token
        self._timeout = timeout

    # ── Settings ──────────────────────────────────────────────────────────────

    def _setting(self, explicit: Any, key: str, default: Any = None) -> Any:
        if explicit is not None:
            return explicit
        if has_app_context():
            return current_app.config.get(key, default)
        return default

    @property
    def base_url(self) -> str | None:
        url = self._setting(self._base_url, "ASSESSMENT_SERVICE_URL")
        return url.rstrip("/") if url else None

    @property
    def timeout(self) -> int:
        return int(self._setting(self._timeout, "ASSESSMENT_SERVICE_TIMEOUT", _DEFAULT_TIMEOUT))

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Core request dispatcher ───────────────────────────────────────────────

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        token = self._setting(self._token, "ASSESSMENT_SERVICE_TOKEN")
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def get(self, path: str) -> GatewayResult:
        """GET ``path`` relative to the service URL. Never raises."""
        url = f"{self.base_url}{path}"
        last_error = "Unknown error"
        last_status: int | None = None

        for attempt in range(_RETRY_MAX + 1):
            t0 = time.perf_counter()
            try:
                resp = self.session.get(url, headers=self._headers(), timeout=self.timeout)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code
                if resp.ok:
                    try:
                        data = resp.json() if resp.content else {}
                    except ValueError:
                        data = {}
                    return GatewayResult(True, resp.status_code, data, None, duration_ms)

                last_error = f"HTTP {resp.status_code}: {resp.text[:500]}"
                if resp.status_code < 500:
                    # 4xx will not improve on retry
                    return GatewayResult(False, resp.status_code, None, last_error, duration_ms)
                logger.warning(
                    "Assessment request failed attempt=%d/%d status=%d url=%s",
                    attempt + 1, _RETRY_MAX + 1, resp.status_code, url,
                )
            except requests.Timeout:
                last_error = f"Request timed out after {self.timeout}s"
                logger.warning("Assessment request timed out attempt=%d url=%s", attempt + 1, url)
            except requests.RequestException as exc:
                last_error = str(exc)[:500]
                logger.warning(
                    "Assessment network error attempt=%d url=%s error=%s",
                    attempt + 1, url, last_error,
                )

            if attempt < _RETRY_MAX:
                time.sleep(_RETRY_BACKOFF_SECONDS)

        return GatewayResult(False, last_status, None, last_error, 0)

    # ── Assessment operations ─────────────────────────────────────────────────

    def is_assignable(self, assessment_id: str) -> bool:
        """True if the assessment exists and is published/assignable.

        An unreachable service answers False so an unverified assessment is
        never linked.
        """
        if not self.base_url:
            logger.debug("ASSESSMENT_SERVICE_URL not set; assessment %s accepted locally", assessment_id)
            return True

        result = self.get(f"/assessments/{assessment_id}")
        if not result.ok:
            logger.warning(
                "Assessment %s could not be verified: %s", assessment_id, result.error,
            )
            return False

        data = result.data or {}
        if "is_assignable" in data:
            return bool(data["is_assignable"])
        return str(data.get("status", "")).upper() in ASSIGNABLE_STATES


assessment_gateway = AssessmentGateway()
