# params.py
# Per-step argument bundles and the two merge operations over them.
#
# Copy: source wins on conflict.  Add: destination wins on conflict.
# Both mutate the destination in place.

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


# ---------------------------------------------------------------------------
# Body variant
# ---------------------------------------------------------------------------


class BodyKind(str, Enum):
    ABSENT = "absent"
    MAPPING = "mapping"
    SCALAR = "scalar"


@dataclass
class Body:
    """
    Tagged request body.

    MAPPING bodies merge key by key; SCALAR bodies (lists, strings, numbers)
    are only ever replaced whole. ABSENT means the step declared no body.
    """

    kind: BodyKind = BodyKind.ABSENT
    value: Any = None

    @classmethod
    def of(cls, raw: Any) -> "Body":
        if isinstance(raw, Body):
            return raw.clone()
        if raw is None:
            return cls()
        if isinstance(raw, dict):
            return cls(BodyKind.MAPPING, dict(raw))
        return cls(BodyKind.SCALAR, raw)

    @property
    def is_absent(self) -> bool:
        return self.kind is BodyKind.ABSENT

    @property
    def is_mapping(self) -> bool:
        return self.kind is BodyKind.MAPPING

    def clone(self) -> "Body":
        return Body(self.kind, copy.deepcopy(self.value))

    def raw(self) -> Any:
        return self.value


# ---------------------------------------------------------------------------
# Mapping helpers
# ---------------------------------------------------------------------------


def map_combine(dst: dict[str, Any] | None, src: dict[str, Any] | None) -> dict[str, Any]:
    """Merge src into dst; src wins on conflict."""
    merged = dict(dst or {})
    merged.update(src or {})
    return merged


def map_add(dst: dict[str, Any] | None, src: dict[str, Any] | None) -> dict[str, Any]:
    """Merge src into dst; dst keeps its value on conflict."""
    merged = dict(dst or {})
    for key, value in (src or {}).items():
        merged.setdefault(key, value)
    return merged


# ---------------------------------------------------------------------------
# TestParams
# ---------------------------------------------------------------------------

PARAM_SLOTS = ("query_params", "form_params", "path_params", "header_params")


class TestParams(BaseModel):
    """Query/form/path/header mappings plus a single body."""

    __test__ = False

    model_config = ConfigDict(populate_by_name=True)

    query_params: dict[str, Any] = Field(default_factory=dict, alias="queryParams")
    form_params: dict[str, Any] = Field(default_factory=dict, alias="formParams")
    path_params: dict[str, Any] = Field(default_factory=dict, alias="pathParams")
    header_params: dict[str, Any] = Field(default_factory=dict, alias="headerParams")
    body: Body = Field(default_factory=Body, alias="bodyParams")

    @field_validator("query_params", "form_params", "path_params", "header_params", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("body", mode="before")
    @classmethod
    def _wrap_body(cls, value: Any) -> Body:
        return Body.of(value)

    @field_serializer("body")
    def _unwrap_body(self, body: Body) -> Any:
        return body.raw()

    def copy_from(self, src: "TestParams | None") -> None:
        """Copy src into self. Source entries win; a non-mapping body is replaced outright."""
        if src is None:
            src = TestParams()
        for slot in PARAM_SLOTS:
            setattr(self, slot, map_combine(getattr(self, slot), getattr(src, slot)))

        if self.body.is_mapping and src.body.is_mapping:
            self.body = Body(BodyKind.MAPPING, map_combine(self.body.value, src.body.value))
            return
        self.body = src.body.clone()

    def add_from(self, src: "TestParams | None") -> None:
        """Fill self from src without overwriting anything already present."""
        if src is None:
            src = TestParams()
        for slot in PARAM_SLOTS:
            setattr(self, slot, map_add(getattr(self, slot), getattr(src, slot)))

        if self.body.is_mapping and src.body.is_mapping:
            self.body = Body(BodyKind.MAPPING, map_add(self.body.value, src.body.value))
            return
        if self.body.is_absent:
            self.body = src.body.clone()

    def clone(self) -> "TestParams":
        return TestParams(
            query_params=copy.deepcopy(self.query_params),
            form_params=copy.deepcopy(self.form_params),
            path_params=copy.deepcopy(self.path_params),
            header_params=copy.deepcopy(self.header_params),
            body=self.body.clone(),
        )

    def to_dsl(self) -> dict[str, Any]:
        """Camel-cased mapping with empty slots dropped, as written in plan files."""
        dumped = self.model_dump(by_alias=True)
        return {key: value for key, value in dumped.items() if value not in (None, {})}
