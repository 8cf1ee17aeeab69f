import textwrap

import pytest
import yaml

from api_plan import loader
from api_plan.errors import DuplicateSuiteError, PlanParseError, UnrecoverableWriteError
from api_plan.loader import add_from_string, dump_plan, load_plan, split_chunks, write_results
from api_plan.models import MEQA_INIT, TestPlan, TestRun
from api_plan.params import TestParams

PLAN = textwrap.dedent(
    """\
    meqa_init:
    - name: meqa_init
      strict: true
      headerParams:
        X-Trace: abc
    ---
    pets:
    - name: create_pet
      method: POST
      path: /pet
      bodyParams:
        name: rex
    - name: get_pet
      method: get
      path: "/pet/{petId}"
      pathParams:
        petId: "{{create_pet.outputs.id}}"
    ---
    users:
    - name: list_users
      method: get
      path: /users
    """
)


@pytest.fixture
def plan_file(tmp_path):
    path = tmp_path / "plan.yml"
    path.write_text(PLAN, encoding="utf-8")
    return path

# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def test_split_chunks_only_on_bare_separator_lines():
    text = "a:\n- name: x\n---\nb:\n- name: y\n  path: /a---b\n"
    chunks = split_chunks(text)
    assert len(chunks) == 2
    assert "/a---b" in chunks[1]

def test_load_plan_registers_suites_in_order(plan_file):
    plan = load_plan(plan_file)

    assert [s.name for s in plan.suite_list] == ["pets", "users"]
    assert set(plan.suite_map) == {"pets", "users"}

    pets = plan.suite_map["pets"]
    assert [t.name for t in pets.tests] == ["create_pet", "get_pet"]
    assert pets.tests[0].method == "post"
    assert pets.tests[0].params.body.value == {"name": "rex"}
    assert pets.tests[1].params.path_params == {"petId": "{{create_pet.outputs.id}}"}
    assert all(t.suite_name == "pets" for t in pets.tests)

def test_global_defaults_pseudo_suite_is_consumed(plan_file):
    plan = load_plan(plan_file)

    assert MEQA_INIT not in plan.suite_map
    assert plan.strict is True
    assert plan.params.header_params == {"X-Trace": "abc"}
    # Suites created afterwards inherit the defaults.
    assert plan.suite_map["users"].strict is True
    assert plan.suite_map["users"].params.header_params == {"X-Trace": "abc"}

def test_defaults_declared_later_do_not_apply_retroactively():
    plan = TestPlan()
    add_from_string(plan, "early:\n- name: a\n  method: get\n  path: /a\n", 0)
    add_from_string(plan, "meqa_init:\n- name: meqa_init\n  strict: true\n  queryParams: {v: 1}\n", 1)
    add_from_string(plan, "late:\n- name: b\n  method: get\n  path: /b\n", 2)

    assert plan.suite_map["early"].strict is False
    assert plan.suite_map["early"].params.query_params == {}
    assert plan.suite_map["late"].strict is True
    assert plan.suite_map["late"].params.query_params == {"v": 1}

def test_plan_options_are_forwarded(plan_file):
    plan = load_plan(plan_file, base_url="http://svc", fuzz_type="datatype", repro=True)
    assert plan.base_url == "http://svc"
    assert plan.fuzz_type == "datatype"
    assert plan.repro is True

def test_missing_plan_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_plan(tmp_path / "nope.yml")

# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

def test_duplicate_suite_across_chunks_aborts_load(tmp_path):
    path = tmp_path / "dup.yml"
    path.write_text("a:\n- name: one\n---\na:\n- name: two\n", encoding="utf-8")
    with pytest.raises(DuplicateSuiteError, match="Duplicate name a"):
        load_plan(path)

def test_duplicate_suite_is_never_inserted():
    plan = TestPlan()
    add_from_string(plan, "a:\n- name: one\n", 0)
    with pytest.raises(DuplicateSuiteError):
        add_from_string(plan, "a:\n- name: two\n- name: three\n", 1)

    assert len(plan.suite_list) == 1
    assert [t.name for t in plan.suite_map["a"].tests] == ["one"]

def test_duplicate_suite_within_one_chunk_aborts_load():
    plan = TestPlan()
    chunk = "pets:\n- {name: a, method: get, path: /a}\npets:\n- {name: b, method: get, path: /b}\n"

    with pytest.raises(DuplicateSuiteError, match="Duplicate name pets"):
        add_from_string(plan, chunk, 0)
    assert plan.suite_map == {}

def test_chunk_with_a_duplicate_adds_none_of_its_suites():
    plan = TestPlan()
    add_from_string(plan, "a:\n- name: one\n", 0)
    with pytest.raises(DuplicateSuiteError):
        add_from_string(plan, "b:\n- name: two\na:\n- name: three\n", 1)

    assert list(plan.suite_map) == ["a"]

@pytest.mark.parametrize(
    "chunk",
    [
        "pets: not-a-list\n",
        "- just\n- a list\n",
        "pets: [unclosed\n",
        "pets:\n- just a string\n",
    ],
)
def test_malformed_chunk_reports_its_index(chunk):
    plan = TestPlan()
    with pytest.raises(PlanParseError) as excinfo:
        add_from_string(plan, chunk, 3)
    assert excinfo.value.chunk_index == 3
    assert plan.suite_list == []

def test_blank_and_comment_only_chunks_are_skipped():
    plan = TestPlan()
    add_from_string(plan, "\n# just a comment\n", 0)
    add_from_string(plan, "", 1)
    assert plan.suite_list == []

# ---------------------------------------------------------------------------
# Dumping
# ---------------------------------------------------------------------------

def test_dump_plan_round_trips(plan_file, tmp_path):
    plan = load_plan(plan_file)
    plan.comment = "generated\nby hand"
    plan.suite_map["pets"].comment = "pet lifecycle"
    out = tmp_path / "out.yml"

    dump_plan(plan, out)

    text = out.read_text(encoding="utf-8")
    assert text.startswith("# generated\n# by hand\n")
    assert "# pet lifecycle\n---\npets:" in text

    reloaded = load_plan(out)
    assert [s.name for s in reloaded.suite_list] == ["pets", "users"]
    for name in ("pets", "users"):
        before = [t.to_dsl() for t in plan.suite_map[name].tests]
        after = [t.to_dsl() for t in reloaded.suite_map[name].tests]
        assert before == after

def test_write_results_dumps_executed_instances_as_one_suite(tmp_path):
    plan = TestPlan()
    plan.results = [
        TestRun(name="create_pet", method="post", path="/pet", params=TestParams(body={"name": "rex"})),
        TestRun(name="get_pet", method="get", path="/pet/7", params=TestParams(path_params={"petId": 7})),
    ]
    out = tmp_path / "result.yml"

    name = write_results(plan, out)

    reloaded = load_plan(out)
    assert [s.name for s in reloaded.suite_list] == [name]
    tests = reloaded.suite_map[name].tests
    assert [t.name for t in tests] == ["create_pet", "get_pet"]
    assert tests[1].params.path_params == {"petId": 7}

def test_short_write_is_unrecoverable(monkeypatch, tmp_path):
    class ShortFile:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def write(self, text):
            return 0

    monkeypatch.setattr(loader, "open", lambda *a, **k: ShortFile(), raising=False)
    plan = TestPlan()
    add_from_string(plan, "a:\n- name: one\n", 0)

    with pytest.raises(UnrecoverableWriteError, match="writing test suite a failed"):
        dump_plan(plan, tmp_path / "out.yml")

def test_unwritable_target_is_unrecoverable(tmp_path):
    plan = TestPlan()
    add_from_string(plan, "a:\n- name: one\n", 0)

    with pytest.raises(UnrecoverableWriteError, match="opening"):
        dump_plan(plan, tmp_path)

def test_failed_comment_write_is_unrecoverable(monkeypatch, tmp_path):
    class BrokenFile:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def write(self, text):
            raise OSError("disk full")

    monkeypatch.setattr(loader, "open", lambda *a, **k: BrokenFile(), raising=False)
    plan = TestPlan()
    plan.comment = "generated"
    add_from_string(plan, "a:\n- name: one\n", 0)

    with pytest.raises(UnrecoverableWriteError, match="plan comment"):
        dump_plan(plan, tmp_path / "out.yml")

def test_dump_output_is_plain_yaml_per_chunk(plan_file, tmp_path):
    plan = load_plan(plan_file)
    out = tmp_path / "out.yml"
    dump_plan(plan, out)

    chunks = [yaml.safe_load(c) for c in split_chunks(out.read_text(encoding="utf-8"))]
    chunks = [c for c in chunks if c]
    assert [list(c) for c in chunks] == [["pets"], ["users"]]
