# config.py
# Run settings, read from the environment (and a .env file if present).

import os

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

from api_plan.models import Auth


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    meqa_path: str = Field(default=".", description="Directory holding the failure corpus and meta.yml.")
    plan_path: str = Field(default="", description="Plan DSL file; defaults to <meqa_path>/simple.yml.")
    result_path: str = Field(default="", description="Where to dump executed tests; empty to skip.")
    suite: str = Field(default="all", description="Suite to run, or 'all' for every suite in order.")
    base_url: str = ""
    username: str = ""
    password: str = ""
    api_token: str = ""
    fuzz_type: str = "none"
    repro: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv(find_dotenv(usecwd=True))
        meqa_path = os.getenv("MEQA_PATH", ".")
        return cls(
            meqa_path=meqa_path,
            plan_path=os.getenv("MEQA_PLAN") or os.path.join(meqa_path, "simple.yml"),
            result_path=os.getenv("MEQA_RESULT", ""),
            suite=os.getenv("MEQA_SUITE", "all"),
            base_url=os.getenv("MEQA_BASE_URL", ""),
            username=os.getenv("MEQA_USERNAME", ""),
            password=os.getenv("MEQA_PASSWORD", ""),
            api_token=os.getenv("MEQA_API_TOKEN", ""),
            fuzz_type=os.getenv("MEQA_FUZZ_TYPE", "none"),
            repro=_flag(os.getenv("MEQA_REPRO")),
            log_level=os.getenv("MEQA_LOG_LEVEL", "INFO"),
        )

    @property
    def auth(self) -> Auth:
        return Auth(username=self.username, password=self.password, api_token=self.api_token)

    @property
    def suites(self) -> list[str] | None:
        """None means every suite in declaration order."""
        return None if self.suite == "all" else [self.suite]
