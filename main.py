from datetime import datetime, timezone
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError
from pydantic import ValidationError

from config import Settings, build_session, load_settings
from core.models import ProcessingEvent, ProcessingResult, ProcessingSummary
from core.notifier import SesReportNotifier
from core.pipeline import ReportPipeline
from core.property_directory import load_property_directory
from core.retry import RetryPolicy
from core.storage import S3BlobStore
from exceptions import ConfigurationError, ReportBuilderError
from logger import logger


def _failure(message: str) -> Dict[str, Any]:
    return ProcessingResult(
        status_code=500,
        message=f"File processing failed: {message}",
        timestamp=datetime.now(timezone.utc).isoformat(),
        summary=ProcessingSummary(),
    ).to_payload()


def build_pipeline(settings: Settings, context: Optional[Any] = None) -> ReportPipeline:
    session = build_session(settings)
    policy = RetryPolicy(
        max_retries=settings.retry_max_retries,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
        multiplier=settings.retry_backoff_multiplier,
    )
    store = S3BlobStore(session.client("s3"), retry_policy=policy)
    notifier = SesReportNotifier(session.client("ses"), session.client("ssm"), store, settings, retry_policy=policy)
    remaining = getattr(context, "get_remaining_time_in_millis", None)
    return ReportPipeline(
        settings=settings,
        store=store,
        directory=load_property_directory(settings.property_directory_path),
        notifier=notifier,
        remaining_time_ms=remaining if callable(remaining) else None,
    )


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    # Entry point for the scheduled run: validate input, wire AWS clients and run the pipeline
    request_id = getattr(context, "aws_request_id", None)
    if request_id:
        logger.append_keys(correlation_id=request_id)
    logger.info("Report builder lambda invoked", event_keys=list(event.keys()) if isinstance(event, dict) else [])

    # EventBridge wraps custom payloads in "detail"
    raw = event.get("detail", event) if isinstance(event, dict) else {}
    try:
        payload = ProcessingEvent.model_validate(raw)
    except ValidationError as exc:
        logger.error("Event failed validation", errors=exc.errors())
        return _failure("Invalid event payload")

    try:
        settings = load_settings()
        pipeline = build_pipeline(settings, context)
    except ConfigurationError as exc:
        logger.error("Configuration invalid", missing=exc.missing, error=str(exc))
        return _failure(str(exc))
    except (ReportBuilderError, BotoCoreError, OSError, ValueError) as exc:
        logger.exception("Report builder setup failed", error=str(exc))
        return _failure(str(exc))

    result = pipeline.run(payload)
    logger.info("Report builder lambda finished", status_code=result.status_code, processed_files=result.processed_files)
    return result.to_payload()
