# run.py
# Entry point. Loads settings, wires the pieces together, reports.
#
# Settings come from MEQA_* environment variables (see config.py).

import sys
from pathlib import Path

from api_plan import corpus, display, logs
from api_plan.config import Settings
from api_plan.engine import Engine
from api_plan.errors import PlanError
from api_plan.loader import load_plan, write_results
from api_plan.models import TestPlan
from api_plan.runner import HttpStepRunner


def _persist(plan: TestPlan, settings: Settings) -> None:
    if settings.result_path:
        write_results(plan, settings.result_path)
    corpus.write_failures(plan, settings.meqa_path)


def main() -> int:
    settings = Settings.from_env()
    logs.configure(settings.log_level)

    runner = HttpStepRunner(settings.base_url)
    loaded: TestPlan | None = None
    try:
        plan = load_plan(
            settings.plan_path,
            base_url=settings.base_url,
            auth=settings.auth,
            fuzz_type=settings.fuzz_type,
            repro=settings.repro,
        )
        if (Path(settings.meqa_path) / corpus.FAILURES_FILE).exists():
            corpus.read_failures(plan, settings.meqa_path)
        loaded = plan
        Engine(plan, runner).run_plan(settings.suites)
    except (PlanError, OSError) as exc:
        display.halt(str(exc))
        return 1
    finally:
        runner.close()
        # Failures found before an aborted run are still kept.
        if loaded is not None:
            _persist(loaded, settings)

    display.log_errors(plan)
    display.print_summary(plan)
    return 0


if __name__ == "__main__":
    sys.exit(main())
