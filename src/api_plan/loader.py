# loader.py
# Plan DSL reader and writer.
#
# A plan file is a sequence of YAML chunks separated by lines holding only
# `---`. Each chunk maps suite names to ordered test lists. The reserved
# suite `meqa_init` only sets plan-wide defaults.

import logging
import re
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from api_plan.errors import DuplicateSuiteError, PlanParseError, UnrecoverableWriteError
from api_plan.models import MEQA_INIT, SchemaDB, Test, TestPlan

logger = logging.getLogger(__name__)

_SEPARATOR = re.compile(r"^---\r?$", re.MULTILINE)


class _ChunkLoader(yaml.SafeLoader):
    """SafeLoader that refuses a suite name given twice in one chunk."""

    def construct_document(self, node):
        if isinstance(node, yaml.MappingNode):
            seen = set()
            for key_node, _ in node.value:
                if not isinstance(key_node, yaml.ScalarNode):
                    continue
                if key_node.value in seen:
                    raise DuplicateSuiteError(f"Duplicate name {key_node.value} found in test plan")
                seen.add(key_node.value)
        return super().construct_document(node)


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def split_chunks(text: str) -> list[str]:
    return _SEPARATOR.split(text)


def _decode_chunk(chunk: str, index: int) -> dict[str, list[Test]]:
    try:
        data = yaml.load(chunk, Loader=_ChunkLoader)
    except DuplicateSuiteError:
        logger.error("Duplicate suite name in chunk %d", index)
        raise
    except yaml.YAMLError as exc:
        logger.error("The following is not a valid test suite (chunk %d):\n%s", index, chunk)
        raise PlanParseError(f"Chunk {index} is not valid YAML: {exc}", index) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise PlanParseError(f"Chunk {index} must map suite names to test lists", index)

    suites: dict[str, list[Test]] = {}
    for name, tests in data.items():
        if tests is None:
            tests = []
        if not isinstance(tests, list):
            raise PlanParseError(f"Chunk {index}: suite {name!r} is not a list of tests", index)
        try:
            suites[str(name)] = [Test.model_validate(t) for t in tests]
        except ValidationError as exc:
            logger.error("The following is not a valid test suite (chunk %d):\n%s", index, chunk)
            raise PlanParseError(f"Chunk {index}: suite {name!r} is invalid: {exc}", index) from exc
    return suites


def add_from_string(plan: TestPlan, chunk: str, index: int = 0) -> None:
    """Decode one chunk and register its suites on the plan."""
    suites = _decode_chunk(chunk, index)
    for name in suites:
        if name != MEQA_INIT and name in plan.suite_map:
            logger.error("Duplicate name %s found in test plan (chunk %d)", name, index)
            raise DuplicateSuiteError(f"Duplicate name {name} found in test plan")

    for name, tests in suites.items():
        if name == MEQA_INIT:
            for test in tests:
                plan.apply_defaults(test)
            continue

        linked = [t.model_copy(update={"suite_name": name}) for t in tests]
        suite = plan.create_suite(name, linked)
        plan.add(suite)


def load_plan(path: str | Path, db: SchemaDB | None = None, **options: Any) -> TestPlan:
    """
    Read a plan file and return a populated TestPlan.

    `options` are forwarded to TestPlan (base_url, auth, fuzz_type, repro).
    Raises OSError if the file can't be read, PlanParseError or
    DuplicateSuiteError if any chunk is bad; nothing is returned then.
    """
    plan = TestPlan(db=db, **options)
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError:
        logger.error("Can't open the following file: %s", path)
        raise

    for index, chunk in enumerate(split_chunks(text)):
        add_from_string(plan, chunk, index)
    logger.info("Loaded %d suite(s) from %s", len(plan.suite_list), path)
    return plan


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def format_comment(comment: str) -> str:
    return "".join(f"# {line}\n" for line in comment.split("\n"))


def _write_text(fh, text: str, what: str) -> None:
    try:
        count = fh.write(text)
    except OSError as exc:
        raise UnrecoverableWriteError(f"writing {what} failed: {exc}") from exc
    if count != len(text):
        raise UnrecoverableWriteError(f"writing {what} failed: short write")


def _write_suites(path: str | Path, comment: str, suites: Iterable[tuple[str, str, list[dict]]]) -> None:
    try:
        fh = open(path, "w", encoding="utf-8")
    except OSError as exc:
        raise UnrecoverableWriteError(f"opening {path} for writing failed: {exc}") from exc

    with fh:
        if comment:
            _write_text(fh, format_comment(comment), "plan comment")
        for name, suite_comment, tests in suites:
            what = f"test suite {name}"
            _write_text(fh, "\n\n", what)
            if suite_comment:
                _write_text(fh, format_comment(suite_comment), what)
            _write_text(fh, "---\n", what)
            text = yaml.safe_dump({name: tests}, sort_keys=False, default_flow_style=False, allow_unicode=True)
            _write_text(fh, text, what)


def dump_plan(plan: TestPlan, path: str | Path) -> None:
    """Write every suite, in declaration order, back out in DSL form."""
    _write_suites(
        path,
        plan.comment,
        ((s.name, s.comment, [t.to_dsl() for t in s.tests]) for s in plan.suite_list),
    )


def write_results(plan: TestPlan, path: str | Path) -> str:
    """
    Dump the executed instances of the last run as a single suite.

    The suite is named after the completion time; that name is returned.
    """
    name = datetime.now().astimezone().isoformat(timespec="seconds")
    _write_suites(path, "", [(name, "", [t.to_dsl() for t in plan.results])])
    return name
