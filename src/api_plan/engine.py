# engine.py
# Recursive suite interpreter.
#
# Control flow per suite:
#   lookup → clone schema store → for each test:
#     ref step      → run the referenced suite with this test as parent
#     meqa_init     → update suite defaults
#     concrete step → build TestRun → resolve history → append → runner
#                   → classify → cascading skip on failed creation
#   → release schema clone
#
# The engine owns no globals: plan, history and runner are passed in.

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from api_plan import display
from api_plan.errors import RecursiveReferenceError, SuiteNotFoundError, UnresolvedReferenceError
from api_plan.history import RunHistory, resolve_history_parameters
from api_plan.models import MEQA_INIT, Result, Test, TestPlan, TestRun, TestSuite
from api_plan.runner import StepOutcome, StepRunner

logger = logging.getLogger(__name__)


class NestedCounts(str, Enum):
    """
    What a ref step does with the counts of the suite it invokes.

    REPLACE: a sub-suite that reports an error hands its counts and error
    straight back to the caller, which stops; a clean sub-suite's counts
    are dropped. ACCUMULATE: sub-suite counts are added to the caller's in
    place of the ref step itself, and iteration continues.
    """

    REPLACE = "replace"
    ACCUMULATE = "accumulate"


@dataclass
class SuiteResult:
    counts: Counter = field(default_factory=Counter)
    error: Exception | None = None


class Engine:
    def __init__(
        self,
        plan: TestPlan,
        runner: StepRunner,
        history: RunHistory | None = None,
        nested_counts: NestedCounts = NestedCounts.REPLACE,
    ) -> None:
        self.plan = plan
        self.runner = runner
        self.history = history if history is not None else RunHistory()
        self.nested_counts = nested_counts
        self._active: list[str] = []

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(self, name: str, parent: Test | None = None) -> SuiteResult:
        """
        Run the suite called `name`.

        Returns the suite's counts and the first step error it hit. Raises
        SuiteNotFoundError, before touching any state, for an unknown or
        empty suite.
        """
        suite = self.plan.suite_map.get(name)
        if suite is None or not suite.tests:
            msg = f"The following test suite is not found: {name}"
            logger.error(msg)
            raise SuiteNotFoundError(msg)
        if name in self._active:
            raise RecursiveReferenceError(" -> ".join([*self._active, name]))

        self._active.append(name)
        suite.db = self.plan.db.clone_schema() if self.plan.db is not None else None
        try:
            display.suite_start(name, parent.name if parent is not None else None)
            return self._run_suite(suite, parent)
        finally:
            suite.db = None
            self._active.pop()

    def run_plan(self, names: list[str] | None = None) -> list[SuiteResult]:
        """Run the given suites, or all of them in declaration order, totalling into the plan."""
        if names is None:
            names = [suite.name for suite in self.plan.suite_list]
        results = []
        for name in names:
            result = self.run(name)
            self.plan.result_counts.update(result.counts)
            results.append(result)
        return results

    # ------------------------------------------------------------------
    # Suite loop
    # ------------------------------------------------------------------

    def _run_suite(self, suite: TestSuite, parent: Test | None) -> SuiteResult:
        counts: Counter = Counter({Result.TOTAL: len(suite.tests), Result.FAILED: 0})
        first_error: Exception | None = None

        for i, test in enumerate(suite.tests):
            if test.ref:
                forwarded = test.model_copy(update={"strict": suite.strict})
                try:
                    sub = self.run(test.ref, forwarded)
                except SuiteNotFoundError as exc:
                    sub = SuiteResult(Counter(), exc)
                if self.nested_counts is NestedCounts.REPLACE:
                    if sub.error is not None:
                        return sub
                    continue
                counts[Result.TOTAL] -= 1
                counts.update(sub.counts)
                if first_error is None:
                    first_error = sub.error
                continue

            if test.name == MEQA_INIT:
                suite.params.copy_from(test.params)
                suite.strict = test.strict
                continue

            run = self._execute(test, suite, parent)

            if run.schema_error is not None:
                counts[Result.SCHEMA_MISMATCH] += 1
            if run.error is not None:
                logger.error("%s %s (%s): %s", run.method.upper(), run.path, run.name, run.error)
                counts[Result.FAILED] += 1
                if first_error is None:
                    first_error = run.error
            else:
                counts[Result.PASSED] += 1
            display.step_result(run)

            # A failed creation means later reads/updates/deletes in this suite can't succeed.
            if run.is_create and (run.response is None or run.response.status_code >= 300):
                remaining = len(suite.tests) - i - 1
                display.skipping(remaining)
                counts[Result.SKIPPED] += remaining
                break

        return SuiteResult(counts, first_error)

    def _execute(self, test: Test, suite: TestSuite, parent: Test | None) -> TestRun:
        run = TestRun.from_test(test, suite, parent)
        try:
            resolve_history_parameters(run, self.history)
        except UnresolvedReferenceError as exc:
            run.error = exc
            self.history.append(run)
            self.plan.results.append(run)
            return run

        self.history.append(run)
        outcome: StepOutcome = self.runner.run(run, suite)

        self.plan.new_failures.extend(outcome.payloads)
        self.plan.result_counts[Result.FUZZ_TOTAL] += outcome.fuzz_total

        run.response = outcome.response
        run.schema_error = outcome.schema_error
        run.response_error = outcome.response_error
        run.error = outcome.response_error
        if run.error is None and run.strict:
            run.error = outcome.schema_error
        self.plan.results.append(run)
        return run
