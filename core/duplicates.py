"""
Two-pass duplicate elimination.

Pass one runs on S3 metadata before anything is downloaded: the same file
re-sent by a property (same path property, filename and size) is archived so only
the newest copy is parsed. Filenames such as ``DailyReport.pdf`` are shared by every
property, so this pass cannot know whether two uploads are really the same report.

Pass two runs after parsing and is authoritative: reports are keyed on the
property and business date read from their content.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Tuple

from core.models import FileIdentity, ParsedReport
from exceptions import StorageError
from logger import logger

DUPLICATES_PREFIX = "duplicates"


class ArchiveStore(Protocol):
    def copy_object(self, bucket: str, source_key: str, dest_key: str, metadata: Optional[Dict[str, str]] = None) -> None: ...

    def delete_object(self, bucket: str, key: str) -> None: ...


@dataclass
class MetadataDedupResult:
    kept: List[FileIdentity] = field(default_factory=list)
    duplicates: List[FileIdentity] = field(default_factory=list)


def find_metadata_duplicates(files: List[FileIdentity]) -> MetadataDedupResult:
    """Group by (path property, filename, size) and keep the newest upload of each group."""
    groups: Dict[Tuple[str, str, int], List[FileIdentity]] = {}
    for identity in files:
        groups.setdefault((identity.property_id_from_path, identity.filename, identity.size_bytes), []).append(identity)

    newest: Dict[Tuple[str, str, int], FileIdentity] = {}
    for key, members in groups.items():
        best = members[0]
        for candidate in members[1:]:
            if candidate.last_modified_at > best.last_modified_at:
                best = candidate
        newest[key] = best

    result = MetadataDedupResult()
    emitted: set[Tuple[str, str, int]] = set()
    for identity in files:
        key = (identity.property_id_from_path, identity.filename, identity.size_bytes)
        if newest[key] is identity and key not in emitted:
            result.kept.append(identity)
            emitted.add(key)
        else:
            result.duplicates.append(identity)

    if result.duplicates:
        logger.info(
            "Metadata duplicates found",
            total_files=len(files),
            kept=len(result.kept),
            duplicates=[d.storage_key for d in result.duplicates],
        )
    return result


def archive_key(identity: FileIdentity, archived_at: datetime) -> str:
    stamp = archived_at.strftime("%Y%m%dT%H%M%S")
    return f"{DUPLICATES_PREFIX}/{identity.property_id_from_path}/{identity.date_folder}/{stamp}_{identity.filename}"


def archive_duplicates(
    store: ArchiveStore,
    bucket: str,
    duplicates: List[FileIdentity],
    archived_at: datetime,
    reason: str = "metadata-duplicate",
) -> List[str]:
    """Copy each duplicate to ``duplicates/`` and delete the original.

    A failed archive is logged and skipped; the file stays where it is and will be
    seen again by the next run. Returns the archive keys written.
    """
    archived: List[str] = []
    for identity in duplicates:
        dest = archive_key(identity, archived_at)
        try:
            store.copy_object(
                bucket,
                identity.storage_key,
                dest,
                metadata={
                    "original-key": identity.storage_key,
                    "archived-at": archived_at.isoformat(),
                    "reason": reason,
                },
            )
            store.delete_object(bucket, identity.storage_key)
        except StorageError as exc:
            logger.warning("Failed to archive duplicate file", key=identity.storage_key, archive_key=dest, error=str(exc))
            continue
        logger.info("Archived duplicate file", key=identity.storage_key, archive_key=dest)
        archived.append(dest)
    return archived


@dataclass
class ContentDedupResult:
    kept: List[ParsedReport] = field(default_factory=list)
    skipped: List[ParsedReport] = field(default_factory=list)


def drop_content_duplicates(reports: List[ParsedReport], fallback_business_date: str) -> ContentDedupResult:
    """Keep the first successfully parsed report per (property, business date).

    Reports that failed to parse are passed through: without a property and date
    they cannot be matched against anything.
    """
    result = ContentDedupResult()
    first_seen: Dict[Tuple[str, str], ParsedReport] = {}
    for report in reports:
        if not report.succeeded:
            result.kept.append(report)
            continue
        key = (report.effective_property.strip().casefold(), report.effective_business_date(fallback_business_date))
        kept = first_seen.get(key)
        if kept is None:
            first_seen[key] = report
            result.kept.append(report)
            continue
        logger.warning(
            "Duplicate report content skipped",
            property_name=report.effective_property,
            business_date=key[1],
            kept_key=kept.source.storage_key,
            skipped_key=report.source.storage_key,
        )
        result.skipped.append(report)
    return result
