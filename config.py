"""Runtime configuration for the report builder Lambda.

Settings are read from the environment once (``load_dotenv`` for local runs),
frozen into a ``Settings`` object and handed to the pipeline. No AWS clients are
created at import time; ``build_session`` is called by the handler.
"""

import os
from typing import Mapping, Optional

import boto3
from dotenv import load_dotenv
from mypy_boto3_ssm import SSMClient
from pydantic import BaseModel, ConfigDict

from exceptions import ConfigurationError
from logger import logger

load_dotenv()

DEFAULT_FROM_ADDRESS = "reports@warrenresorthotels.com"

_REQUIRED_BUCKETS: dict[str, str] = {
    "incoming_bucket": "INCOMING_FILES_BUCKET",
    "processed_bucket": "PROCESSED_FILES_BUCKET",
    "mapping_bucket": "MAPPING_FILES_BUCKET",
}


class Settings(BaseModel):
    """Immutable runtime settings passed into the pipeline."""

    model_config = ConfigDict(frozen=True)

    environment: str = "dev"
    aws_region: Optional[str] = None
    aws_profile: Optional[str] = None
    incoming_bucket: str
    processed_bucket: str
    mapping_bucket: str
    property_directory_path: Optional[str] = None
    retry_max_retries: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 10.0
    retry_backoff_multiplier: float = 2.0
    deadline_safety_margin_ms: int = 60_000
    lookback_hours: int = 24

    @property
    def parameter_prefix(self) -> str:
        return f"/report-builder/{self.environment}"

    @property
    def recipients_parameter(self) -> str:
        return f"{self.parameter_prefix}/email/recipients"

    @property
    def from_address_parameter(self) -> str:
        return f"{self.parameter_prefix}/email/from-address"

    @property
    def configuration_set_parameter(self) -> str:
        return f"{self.parameter_prefix}/ses/configuration-set"


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(message=f"{name} must be an integer, got {raw!r}") from exc


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(message=f"{name} must be a number, got {raw!r}") from exc


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from environment variables.

    Raises:
        ConfigurationError: when a required bucket variable is missing or a
            numeric variable cannot be parsed.
    """
    env = os.environ if environ is None else environ

    buckets = {field: (env.get(var) or "").strip() for field, var in _REQUIRED_BUCKETS.items()}
    missing = [_REQUIRED_BUCKETS[field] for field, value in buckets.items() if not value]
    if missing:
        logger.error("Missing required configuration", missing=missing)
        raise ConfigurationError(missing)

    return Settings(
        environment=(env.get("ENVIRONMENT") or "dev").strip(),
        aws_region=env.get("AWS_REGION") or None,
        aws_profile=env.get("AWS_PROFILE") or None,
        property_directory_path=env.get("PROPERTY_DIRECTORY_PATH") or None,
        retry_max_retries=_int_env(env, "RETRY_MAX_RETRIES", 3),
        retry_base_delay_seconds=_float_env(env, "RETRY_BASE_DELAY_SECONDS", 1.0),
        retry_max_delay_seconds=_float_env(env, "RETRY_MAX_DELAY_SECONDS", 10.0),
        retry_backoff_multiplier=_float_env(env, "RETRY_BACKOFF_MULTIPLIER", 2.0),
        deadline_safety_margin_ms=_int_env(env, "DEADLINE_SAFETY_MARGIN_MS", 60_000),
        lookback_hours=_int_env(env, "LOOKBACK_HOURS", 24),
        **buckets,
    )


def build_session(settings: Settings) -> boto3.session.Session:
    if settings.aws_profile:
        return boto3.session.Session(region_name=settings.aws_region, profile_name=settings.aws_profile)
    return boto3.session.Session(region_name=settings.aws_region)


def fetch_parameter(ssm_client: SSMClient, name: str) -> str:
    """Fetches a single parameter from AWS SSM Parameter Store."""
    try:
        response = ssm_client.get_parameter(Name=name, WithDecryption=True)
        return response["Parameter"]["Value"]
    except ssm_client.exceptions.ParameterNotFound as e:
        logger.error("Parameter not found in SSM.", parameter=name)
        raise ValueError("Parameter not found in SSM.") from e
    except ssm_client.exceptions.ClientError as e:
        logger.error("Error fetching parameter", parameter=name)
        raise RuntimeError("Error fetching parameter") from e
