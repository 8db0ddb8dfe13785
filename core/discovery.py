"""Find the daily report objects a run should consider."""

from datetime import date, datetime, timedelta
from typing import Iterable, List, Protocol

from core.models import DAILY_FILES_PREFIX, FileIdentity, ObjectSummary, ParsedReport
from logger import logger


class ObjectLister(Protocol):
    def list_objects(self, bucket: str, prefix: str) -> List[ObjectSummary]: ...


def to_identities(objects: Iterable[ObjectSummary]) -> List[FileIdentity]:
    identities: List[FileIdentity] = []
    for obj in objects:
        identity = FileIdentity.from_key(obj.key, obj.last_modified, obj.size)
        if identity is None:
            logger.debug("Ignoring object outside daily-files layout", key=obj.key)
            continue
        identities.append(identity)
    return identities


def discover_recent(
    store: ObjectLister,
    bucket: str,
    now: datetime,
    window: timedelta = timedelta(hours=24),
) -> List[FileIdentity]:
    """Files uploaded within ``window`` of ``now``."""
    cutoff = now - window
    objects = [o for o in store.list_objects(bucket, f"{DAILY_FILES_PREFIX}/") if o.last_modified >= cutoff]
    identities = to_identities(objects)
    logger.info("Discovered recent files", bucket=bucket, cutoff=cutoff.isoformat(), files_found=len(identities))
    return identities


def discover_folder_dates(store: ObjectLister, bucket: str, folder_dates: Iterable[str]) -> List[FileIdentity]:
    wanted = set(folder_dates)
    identities = [i for i in to_identities(store.list_objects(bucket, f"{DAILY_FILES_PREFIX}/")) if i.date_folder in wanted]
    logger.info("Discovered files by folder date", bucket=bucket, folder_dates=sorted(wanted), files_found=len(identities))
    return identities


def discover_folder_date(store: ObjectLister, bucket: str, folder_date: date) -> List[FileIdentity]:
    return discover_folder_dates(store, bucket, [folder_date.isoformat()])


def business_date_folders(business_date: date) -> List[str]:
    # Properties send the night audit either late the same day or the next morning
    return [business_date.isoformat(), (business_date + timedelta(days=1)).isoformat()]


def discover_business_date(store: ObjectLister, bucket: str, business_date: date) -> List[FileIdentity]:
    """Candidates for ``business_date``; the caller confirms the date after parsing."""
    return discover_folder_dates(store, bucket, business_date_folders(business_date))


def filter_by_business_date(reports: Iterable[ParsedReport], business_date: str) -> List[ParsedReport]:
    """Keep reports whose content confirms ``business_date``.

    Failed reports pass through so they are still counted; successful reports
    without a business date in their content cannot confirm it and are dropped.
    """
    kept: List[ParsedReport] = []
    for report in reports:
        if not report.succeeded or report.business_date == business_date:
            kept.append(report)
            continue
        logger.info(
            "Report excluded by business date",
            key=report.source.storage_key,
            business_date=report.business_date,
            requested_business_date=business_date,
        )
    return kept
