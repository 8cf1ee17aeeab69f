# history.py
# Append-only log of executed test instances, and resolution of parameter
# values that point at earlier results.
#
# Expressions look like {{create_pet.outputs.id}} or
# {{create_pet.inputs.pathParams.petId}}. They are resolved before a step
# runs and before it is appended, so a step never sees itself.

import re
import threading
from collections.abc import Iterator
from typing import Any

from api_plan.errors import UnresolvedReferenceError
from api_plan.models import TestRun
from api_plan.params import Body, BodyKind, TestParams

_EXPR = re.compile(r"\{\{\s*([^{}\s]+?)\s*\}\}")

_INPUT_SLOTS = {
    "queryParams": "query_params",
    "formParams": "form_params",
    "pathParams": "path_params",
    "headerParams": "header_params",
}


class RunHistory:
    """
    Executed test instances in the order they were dispatched.

    Every access takes the lock, even though suites currently run one at a
    time. The lock is never held while a step is executing.
    """

    def __init__(self) -> None:
        self._tests: list[TestRun] = []
        self._lock = threading.Lock()

    def append(self, test: TestRun) -> None:
        with self._lock:
            self._tests.append(test)

    def get(self, name: str) -> TestRun | None:
        """Most recently appended instance called `name`, or None."""
        with self._lock:
            for test in reversed(self._tests):
                if test.name == name:
                    return test
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._tests)

    def __iter__(self) -> Iterator[TestRun]:
        with self._lock:
            snapshot = list(self._tests)
        return iter(snapshot)


# ---------------------------------------------------------------------------
# Reference resolution
# ---------------------------------------------------------------------------


def _walk(value: Any, path: list[str], expr: str) -> Any:
    for part in path:
        if isinstance(value, dict) and part in value:
            value = value[part]
        elif isinstance(value, list) and part.isdigit() and int(part) < len(value):
            value = value[int(part)]
        else:
            raise UnresolvedReferenceError(f"{expr}: '{part}' not found")
    return value


def lookup(expr: str, history: RunHistory) -> Any:
    """Evaluate one `<step>.<outputs|inputs>.<path>` expression against history."""
    parts = expr.split(".")
    if len(parts) < 2:
        raise UnresolvedReferenceError(f"Malformed reference: {expr}")
    name, section, path = parts[0], parts[1], parts[2:]

    prior = history.get(name)
    if prior is None:
        raise UnresolvedReferenceError(f"Referenced test not found in history: {name}")

    if section == "outputs":
        body = prior.response.body if prior.response is not None else None
        return _walk(body, path, expr)
    if section == "inputs":
        if not path:
            raise UnresolvedReferenceError(f"Malformed reference: {expr}")
        if path[0] == "bodyParams":
            return _walk(prior.params.body.raw(), path[1:], expr)
        slot = _INPUT_SLOTS.get(path[0])
        if slot is None:
            raise UnresolvedReferenceError(f"{expr}: unknown parameter slot '{path[0]}'")
        return _walk(getattr(prior.params, slot), path[1:], expr)
    raise UnresolvedReferenceError(f"{expr}: expected 'outputs' or 'inputs', got '{section}'")


def resolve_value(value: Any, history: RunHistory) -> Any:
    if isinstance(value, dict):
        return {key: resolve_value(item, history) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_value(item, history) for item in value]
    if not isinstance(value, str):
        return value

    whole = _EXPR.fullmatch(value.strip())
    if whole:
        return lookup(whole.group(1), history)
    return _EXPR.sub(lambda m: str(lookup(m.group(1), history)), value)


def resolve_params(params: TestParams, history: RunHistory) -> None:
    """Replace every history expression in params, in place."""
    for slot in _INPUT_SLOTS.values():
        setattr(params, slot, resolve_value(getattr(params, slot), history))
    if params.body.kind is not BodyKind.ABSENT:
        params.body = Body.of(resolve_value(params.body.raw(), history))


def resolve_history_parameters(test: TestRun, history: RunHistory) -> None:
    resolve_params(test.params, history)
    test.path = resolve_value(test.path, history)
