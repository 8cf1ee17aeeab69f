# models.py
# Data contracts for plans, suites, tests and fuzz-failure records.
# Merge rules live in params.py, execution in engine.py.

import copy
import json
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, model_validator

from api_plan.errors import DuplicateSuiteError, SchemaMismatchError, StepError
from api_plan.params import TestParams

MEQA_INIT = "meqa_init"
FUZZ_ALL = "all"
METHOD_POST = "post"

_PARAM_KEYS = ("queryParams", "formParams", "pathParams", "headerParams", "bodyParams")


class Result(str, Enum):
    TOTAL = "Total"
    PASSED = "Passed"
    FAILED = "Failed"
    SKIPPED = "Skipped"
    SCHEMA_MISMATCH = "SchemaMismatch"
    FUZZ_FAILS = "FuzzFails"
    FUZZ_TOTAL = "FuzzTotal"


class SchemaDB(Protocol):
    """Schema store used to validate responses. Cloned once per suite run."""

    def clone_schema(self) -> Any: ...


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------


class Test(BaseModel):
    """One declared step. Read-only; every execution works on a TestRun."""

    __test__ = False

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = ""
    ref: str = ""
    method: str = ""
    path: str = ""
    params: TestParams = Field(default_factory=TestParams)
    strict: bool = False
    expect: dict[str, Any] = Field(default_factory=dict)
    username: str = ""
    password: str = ""
    api_token: str = Field(default="", alias="apiToken")
    suite_name: str = Field(default="", exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _gather_params(cls, data: Any) -> Any:
        """Plan files write parameter slots inline on the test; fold them into `params`."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "params" not in data:
            data["params"] = {key: data.pop(key) for key in _PARAM_KEYS if key in data}
        if isinstance(data.get("method"), str):
            data["method"] = data["method"].lower()
        return data

    def to_dsl(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.ref:
            out["ref"] = self.ref
        if self.method:
            out["method"] = self.method
        if self.path:
            out["path"] = self.path
        out.update(self.params.to_dsl())
        if self.strict:
            out["strict"] = True
        if self.expect:
            out["expect"] = dict(self.expect)
        for key, value in (("username", self.username), ("password", self.password), ("apiToken", self.api_token)):
            if value:
                out[key] = value
        return out


class Auth(BaseModel):
    username: str = ""
    password: str = ""
    api_token: str = ""

    def override(self, test: Test) -> "Auth":
        return Auth(
            username=test.username or self.username,
            password=test.password or self.password,
            api_token=test.api_token or self.api_token,
        )


class TestSuite(BaseModel):
    """A named, ordered group of tests sharing defaults."""

    __test__ = False

    name: str
    tests: list[Test] = Field(default_factory=list)
    params: TestParams = Field(default_factory=TestParams)
    strict: bool = False
    auth: Auth = Field(default_factory=Auth)
    comment: str = ""
    # Schema store clone, only set while the suite is running.
    db: Any = None


# ---------------------------------------------------------------------------
# Run instances
# ---------------------------------------------------------------------------


@dataclass
class Response:
    status_code: int
    body: Any = None
    text: str = ""


@dataclass
class TestRun:
    """
    A fresh, independently owned execution record for one step.

    Built from a declaration by `from_test`; nothing written here ever
    reaches the declaration it came from.
    """

    __test__ = False

    name: str
    method: str
    path: str
    params: TestParams
    strict: bool = False
    expect: dict[str, Any] = field(default_factory=dict)
    auth: Auth = field(default_factory=Auth)
    suite_name: str = ""
    db: Any = None

    response: Response | None = None
    schema_error: SchemaMismatchError | None = None
    response_error: StepError | None = None
    error: Exception | None = None

    @classmethod
    def from_test(cls, test: Test, suite: "TestSuite", parent: Test | None = None) -> "TestRun":
        run = cls(
            name=test.name,
            method=test.method,
            path=test.path,
            params=test.params.clone(),
            strict=suite.strict,
            expect=copy.deepcopy(test.expect),
            auth=suite.auth.override(test),
            suite_name=suite.name,
            db=suite.db,
        )
        if parent is not None:
            run.params.copy_from(parent.params)
            run.strict = parent.strict
            if parent.expect:
                run.expect = copy.deepcopy(parent.expect)
            run.name = parent.name
        # Suite defaults only fill what the test (and its parent) left unset.
        run.params.add_from(suite.params)
        return run

    @property
    def is_create(self) -> bool:
        """A POST addressed to a collection, i.e. one that creates a resource."""
        return self.method == METHOD_POST and not self.params.path_params

    def to_dsl(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "method": self.method, "path": self.path}
        out.update(self.params.to_dsl())
        if self.strict:
            out["strict"] = True
        if self.expect:
            out["expect"] = dict(self.expect)
        return out


# ---------------------------------------------------------------------------
# Fuzz failures
# ---------------------------------------------------------------------------


def _canonical(value: Any) -> Any:
    """Integral floats collapse onto ints so 1 and 1.0 index the same failure."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {k: _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


@dataclass(frozen=True)
class FuzzValue:
    """A (value, fuzz type) pair usable as a set member whatever the value's type."""

    value: Any
    fuzz_type: str

    def _key(self) -> tuple[str, str]:
        return json.dumps(_canonical(self.value), sort_keys=True, default=str), self.fuzz_type

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FuzzValue):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())


class Payload(BaseModel):
    """One persisted fuzz failure."""

    model_config = ConfigDict(populate_by_name=True)

    endpoint: str
    method: str
    field: str
    value: Any = None
    fuzz_type: str = Field(default="", alias="fuzzType")
    meta: dict[str, Any] | None = None

    @property
    def fuzz_value(self) -> FuzzValue:
        return FuzzValue(self.value, self.fuzz_type)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class FailureIndex:
    """endpoint → method → field → {FuzzValue}, built from the persisted corpus."""

    def __init__(self) -> None:
        self._index: dict[str, dict[str, dict[str, set[FuzzValue]]]] = {}

    def add(self, payload: Payload) -> None:
        fields = self._index.setdefault(payload.endpoint, {}).setdefault(payload.method, {})
        fields.setdefault(payload.field, set()).add(payload.fuzz_value)

    def contains(self, endpoint: str, method: str, field_name: str, value: FuzzValue) -> bool:
        return value in self._index.get(endpoint, {}).get(method, {}).get(field_name, set())

    def __len__(self) -> int:
        return sum(
            len(values)
            for methods in self._index.values()
            for fields in methods.values()
            for values in fields.values()
        )


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


class TestPlan:
    """All suites in a DSL file, global defaults, and the state of the latest run."""

    __test__ = False

    def __init__(
        self,
        db: SchemaDB | None = None,
        base_url: str = "",
        auth: Auth | None = None,
        fuzz_type: str = "none",
        repro: bool = False,
    ) -> None:
        self.db = db
        self.base_url = base_url
        self.auth = auth or Auth()
        self.fuzz_type = fuzz_type
        self.repro = repro

        self.params = TestParams()
        self.strict = False
        self.comment = ""

        self.suite_map: dict[str, TestSuite] = {}
        self.suite_list: list[TestSuite] = []

        self.results: list[TestRun] = []
        self.result_counts: Counter = Counter()
        self.old_failures = FailureIndex()
        self.new_failures: list[Payload] = []
        self.other_failures: list[Payload] = []

    def create_suite(self, name: str, tests: list[Test]) -> TestSuite:
        """New suite seeded from the plan's defaults as they stand right now."""
        params = TestParams()
        params.copy_from(self.params)
        return TestSuite(
            name=name,
            tests=tests,
            params=params,
            strict=self.strict,
            auth=self.auth.model_copy(),
        )

    def add(self, suite: TestSuite) -> None:
        if suite.name in self.suite_map:
            raise DuplicateSuiteError(f"Duplicate name {suite.name} found in test plan")
        self.suite_map[suite.name] = suite
        self.suite_list.append(suite)

    def apply_defaults(self, test: Test) -> None:
        self.params.copy_from(test.params)
        self.strict = test.strict

    def reset_results(self) -> None:
        self.results = []
        self.result_counts = Counter()
        self.new_failures = []
