"""
Runtime configuration read from environment variables.

The Lambda function is configured through its environment; the local FastAPI
entry point loads a `.env` file first (python-dotenv) and then reads the same
variables. Settings are read once per invocation and never mutated.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from vectorindex.infrastructure.opensearch.index_mapping import KnnSettings

REPORTER_PROVIDER = "provider"
REPORTER_CFN_RESPONSE = "cfn-response"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    region: str = "us-east-1"
    retry_max_attempts: int = 5
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 20.0
    retry_max_elapsed: float = 120.0
    consistency_wait_attempts: int = 5
    request_timeout: float = 30.0
    deadline_margin: float = 10.0
    knn: KnnSettings = KnnSettings()
    result_reporter: str = REPORTER_PROVIDER
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from *environ* (defaults to os.environ).

        Raises:
            ValueError: if a variable is set to a value of the wrong type or range.
        """
        env = os.environ if environ is None else environ
        settings = cls(
            region=env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION") or "us-east-1",
            retry_max_attempts=_int(env, "RETRY_MAX_ATTEMPTS", 5, minimum=1),
            retry_initial_delay=_float(env, "RETRY_INITIAL_DELAY_SECONDS", 1.0),
            retry_max_delay=_float(env, "RETRY_MAX_DELAY_SECONDS", 20.0),
            retry_max_elapsed=_float(env, "RETRY_MAX_ELAPSED_SECONDS", 120.0),
            consistency_wait_attempts=_int(env, "CONSISTENCY_WAIT_ATTEMPTS", 5, minimum=1),
            request_timeout=_float(env, "REQUEST_TIMEOUT_SECONDS", 30.0),
            deadline_margin=_float(env, "DEADLINE_MARGIN_SECONDS", 10.0),
            knn=KnnSettings(
                engine=env.get("KNN_ENGINE", "faiss"),
                space_type=env.get("KNN_SPACE_TYPE", "l2"),
                number_of_shards=_int(env, "INDEX_NUMBER_OF_SHARDS", 2, minimum=1),
                ef_search=_int(env, "KNN_EF_SEARCH", 512, minimum=1),
            ),
            result_reporter=env.get("RESULT_REPORTER", REPORTER_PROVIDER).strip().lower(),
            log_level=env.get("LOG_LEVEL", "INFO").strip().upper(),
        )
        if settings.result_reporter not in (REPORTER_PROVIDER, REPORTER_CFN_RESPONSE):
            raise ValueError(
                f"RESULT_REPORTER must be {REPORTER_PROVIDER!r} or {REPORTER_CFN_RESPONSE!r}, "
                f"got {settings.result_reporter!r}"
            )
        if settings.log_level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, got {settings.log_level!r}")
        if settings.retry_initial_delay > settings.retry_max_delay:
            raise ValueError("RETRY_INITIAL_DELAY_SECONDS must not exceed RETRY_MAX_DELAY_SECONDS")
        return settings


def _int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value
