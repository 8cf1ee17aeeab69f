from api_plan.params import Body, BodyKind, TestParams, map_add, map_combine


def _params(**slots) -> TestParams:
    return TestParams.model_validate(slots)

# ---------------------------------------------------------------------------
# Mapping slots
# ---------------------------------------------------------------------------

def test_copy_source_wins_and_destination_only_keys_survive():
    dst = _params(queryParams={"a": 1, "b": 2}, headerParams={"X-Keep": "1"})
    src = _params(queryParams={"b": 3, "c": 4}, pathParams={"id": 9})

    dst.copy_from(src)

    assert dst.query_params == {"a": 1, "b": 3, "c": 4}
    assert dst.header_params == {"X-Keep": "1"}
    assert dst.path_params == {"id": 9}
    assert dst.form_params == {}

def test_add_never_overwrites_existing_keys():
    dst = _params(formParams={"a": 1, "b": 2})
    src = _params(formParams={"b": 3, "c": 4})

    dst.add_from(src)

    assert dst.form_params == {"a": 1, "b": 2, "c": 4}

def test_merges_tolerate_empty_and_missing_source():
    dst = _params(queryParams={"a": 1}, bodyParams={"x": 1})
    dst.add_from(None)
    dst.add_from(TestParams())
    assert dst.query_params == {"a": 1}
    assert dst.body.value == {"x": 1}

    empty = TestParams()
    empty.copy_from(TestParams())
    assert empty.query_params == {}
    assert empty.body.is_absent

def test_map_helpers_do_not_touch_inputs():
    left, right = {"a": 1}, {"a": 2, "b": 3}
    assert map_combine(left, right) == {"a": 2, "b": 3}
    assert map_add(left, right) == {"a": 1, "b": 3}
    assert map_combine(None, None) == {}
    assert left == {"a": 1}

# ---------------------------------------------------------------------------
# Body variant
# ---------------------------------------------------------------------------

def test_body_kinds_from_raw_values():
    assert _params(bodyParams={"a": 1}).body.kind is BodyKind.MAPPING
    assert _params(bodyParams=[1, 2]).body.kind is BodyKind.SCALAR
    assert _params(bodyParams="text").body.kind is BodyKind.SCALAR
    assert _params(bodyParams=None).body.kind is BodyKind.ABSENT
    assert TestParams().body.kind is BodyKind.ABSENT

def test_copy_merges_mapping_bodies_source_wins():
    dst = _params(bodyParams={"name": "rex", "age": 3})
    dst.copy_from(_params(bodyParams={"name": "fido"}))
    assert dst.body.value == {"name": "fido", "age": 3}

def test_copy_replaces_non_mapping_body_even_with_absent_source():
    dst = _params(bodyParams={"name": "rex"})
    dst.copy_from(_params(bodyParams=[1, 2]))
    assert dst.body == Body(BodyKind.SCALAR, [1, 2])

    dst.copy_from(TestParams())
    assert dst.body.is_absent

def test_add_merges_mapping_bodies_destination_wins():
    dst = _params(bodyParams={"name": "rex"})
    dst.add_from(_params(bodyParams={"name": "fido", "age": 3}))
    assert dst.body.value == {"name": "rex", "age": 3}

def test_add_only_fills_absent_body():
    scalar = _params(bodyParams="keep")
    scalar.add_from(_params(bodyParams={"x": 1}))
    assert scalar.body.value == "keep"

    absent = TestParams()
    absent.add_from(_params(bodyParams=[1]))
    assert absent.body == Body(BodyKind.SCALAR, [1])

def test_clone_is_independent():
    original = _params(queryParams={"a": {"nested": 1}}, bodyParams={"k": [1]})
    clone = original.clone()
    clone.query_params["a"]["nested"] = 2
    clone.body.value["k"].append(2)
    assert original.query_params == {"a": {"nested": 1}}
    assert original.body.value == {"k": [1]}

def test_to_dsl_drops_empty_slots():
    params = _params(pathParams={"id": 1}, bodyParams={"a": 1})
    assert params.to_dsl() == {"pathParams": {"id": 1}, "bodyParams": {"a": 1}}
    assert TestParams().to_dsl() == {}
