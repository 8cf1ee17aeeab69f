# corpus.py
# Persistence of fuzz failures between runs.
#
# mqfails.jsonl   cumulative corpus, one Payload per line
# newFails.jsonl  failures found by the latest run only, rewritten each time
# meta.yml        sidecar metadata stamped onto every newly written failure

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from api_plan.errors import CorpusError
from api_plan.models import FUZZ_ALL, Payload, TestPlan

logger = logging.getLogger(__name__)

FAILURES_FILE = "mqfails.jsonl"
NEW_FAILURES_FILE = "newFails.jsonl"
META_FILE = "meta.yml"


def iter_payloads(path: Path):
    """Yield Payload records from a newline-delimited JSON file."""
    with open(path, encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                yield Payload.model_validate_json(line)
            except ValidationError as exc:
                raise CorpusError(f"{path}:{lineno}: invalid failure record: {exc}") from exc


def read_failures(plan: TestPlan, directory: str | Path) -> None:
    """
    Load the cumulative corpus into the plan.

    Records of the plan's fuzz type (or every record when the fuzz type is
    "all") go to plan.old_failures; the rest are kept verbatim in
    plan.other_failures. Raises FileNotFoundError if there is no corpus.
    """
    path = Path(directory) / FAILURES_FILE
    matched = other = 0
    for payload in iter_payloads(path):
        if plan.fuzz_type in (payload.fuzz_type, FUZZ_ALL):
            plan.old_failures.add(payload)
            matched += 1
        else:
            plan.other_failures.append(payload)
            other += 1
    logger.info("Read %d known failure(s) for fuzz type %s, %d of other types", matched, plan.fuzz_type, other)


def read_metadata(directory: str | Path) -> dict[str, Any]:
    path = Path(directory) / META_FILE
    try:
        meta = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("Metadata file not found: %s", path)
        return {}
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Could not read metadata %s: %s", path, exc)
        return {}
    if not isinstance(meta, dict):
        logger.warning("Metadata in %s is not a mapping, ignoring it", path)
        return {}
    return meta


def write_failures(plan: TestPlan, directory: str | Path) -> None:
    """
    Persist this run's failures.

    Repro mode rewrites the corpus from scratch: untested fuzz types first,
    then the new failures. Otherwise new failures are appended. The
    new-failures file always holds exactly this run's failures.
    """
    directory = Path(directory)
    meta = read_metadata(directory)
    mode = "w" if plan.repro else "a"

    with open(directory / FAILURES_FILE, mode, encoding="utf-8") as corpus, open(
        directory / NEW_FAILURES_FILE, "w", encoding="utf-8"
    ) as new_fails:
        if plan.repro:
            for payload in plan.other_failures:
                corpus.write(payload.to_json() + "\n")
        for payload in plan.new_failures:
            payload.meta = meta or None
            line = payload.to_json() + "\n"
            corpus.write(line)
            new_fails.write(line)

    logger.info(
        "Wrote %d new failure(s) to %s (%s)",
        len(plan.new_failures),
        directory / FAILURES_FILE,
        "repro" if plan.repro else "append",
    )


def is_known_failure(plan: TestPlan, payload: Payload) -> bool:
    return plan.old_failures.contains(payload.endpoint, payload.method, payload.field, payload.fuzz_value)
