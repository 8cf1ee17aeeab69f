# runner.py
# Single-step execution. The engine hands each TestRun to a StepRunner and
# only looks at the StepOutcome it gets back.
#
# HttpStepRunner is a plain httpx transport: no schema validation, no
# fuzzing. Schema-aware runners implement the same protocol.

import json
import logging
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from api_plan.errors import SchemaMismatchError, StepError
from api_plan.models import Payload, Response, TestRun, TestSuite

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 15


@dataclass
class StepOutcome:
    response: Response | None = None
    payloads: list[Payload] = field(default_factory=list)
    schema_error: SchemaMismatchError | None = None
    response_error: StepError | None = None
    fuzz_total: int = 0


class StepRunner(Protocol):
    def run(self, test: TestRun, suite: TestSuite) -> StepOutcome: ...


def expand_path(path: str, path_params: dict) -> str:
    for key, value in path_params.items():
        path = path.replace("{" + key + "}", str(value))
    return path


def check_status(status_code: int, expect: dict) -> StepError | None:
    """
    Compare a status code with the test's `expect.status`.

    `success` (the default) accepts any code below 300, `fail` any code from
    300 up, and an integer must match exactly.
    """
    expected = expect.get("status", "success")
    if isinstance(expected, int):
        ok = status_code == expected
    elif str(expected).lower() == "fail":
        ok = status_code >= 300
    else:
        ok = status_code < 300
    if ok:
        return None
    return StepError(f"Expected status {expected}, got {status_code}", status_code)


class HttpStepRunner:
    """Sends each step with httpx against `base_url`."""

    def __init__(self, base_url: str, client: httpx.Client | None = None, timeout: float = 30.0) -> None:
        self._client = client or httpx.Client(
            base_url=base_url,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            timeout=timeout,
        )

    def close(self) -> None:
        self._client.close()

    def _auth(self, test: TestRun) -> tuple[dict[str, str], httpx.BasicAuth | None]:
        headers: dict[str, str] = {}
        if test.auth.api_token:
            headers["Authorization"] = f"Bearer {test.auth.api_token}"
            return headers, None
        if test.auth.username:
            return headers, httpx.BasicAuth(test.auth.username, test.auth.password)
        return headers, None

    def run(self, test: TestRun, suite: TestSuite) -> StepOutcome:
        params = test.params
        auth_headers, basic = self._auth(test)
        headers = {**auth_headers, **{k: str(v) for k, v in params.header_params.items()}}

        request_kwargs: dict = {
            "params": params.query_params or None,
            "headers": headers,
        }
        if basic is not None:
            request_kwargs["auth"] = basic
        if params.form_params:
            request_kwargs["data"] = params.form_params
        elif not params.body.is_absent:
            request_kwargs["json"] = params.body.raw()

        url = expand_path(test.path, params.path_params)
        try:
            raw = self._client.request(test.method.upper(), url, **request_kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", test.method.upper(), url, exc)
            return StepOutcome(response_error=StepError(f"{test.method.upper()} {url}: {exc}"))

        try:
            body = raw.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None
        response = Response(status_code=raw.status_code, body=body, text=raw.text)
        logger.debug("%s %s -> %d", test.method.upper(), url, raw.status_code)
        return StepOutcome(response=response, response_error=check_status(raw.status_code, test.expect))
