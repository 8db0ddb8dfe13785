"""
Unit tests for the metadata and content duplicate passes.
"""

from datetime import datetime, timedelta, timezone

from core.duplicates import archive_duplicates, archive_key, drop_content_duplicates, find_metadata_duplicates
from core.models import ParsedReport
from tests.helpers import FakeBlobStore, make_identity

T0 = datetime(2025, 7, 15, 8, 0, tzinfo=timezone.utc)


# region Metadata pass
def test_newest_upload_of_identical_file_is_kept() -> None:
    older = make_identity(last_modified=T0)
    newer = make_identity(last_modified=T0 + timedelta(minutes=5))

    result = find_metadata_duplicates([older, newer])

    assert result.kept == [newer]
    assert result.duplicates == [older]


def test_same_filename_from_different_properties_is_not_a_duplicate() -> None:
    a = make_identity("daily-files/bards-inn/2025-07-15/DailyReport.pdf")
    b = make_identity("daily-files/vine-inn/2025-07-15/DailyReport.pdf")
    c = make_identity("daily-files/bards-inn/2025-07-15/DailyReport.pdf", size=2048)

    result = find_metadata_duplicates([a, b, c])

    assert result.kept == [a, b, c]
    assert result.duplicates == []


def test_timestamp_tie_keeps_first_seen() -> None:
    first = make_identity(last_modified=T0)
    second = make_identity(last_modified=T0)

    result = find_metadata_duplicates([first, second])

    assert result.kept == [first]
    assert result.duplicates == [second]


def test_second_metadata_pass_changes_nothing() -> None:
    files = [
        make_identity(last_modified=T0),
        make_identity(last_modified=T0 + timedelta(minutes=5)),
        make_identity("daily-files/vine-inn/2025-07-15/DailyReport.pdf"),
    ]
    first = find_metadata_duplicates(files)

    second = find_metadata_duplicates(first.kept)

    assert second.kept == first.kept
    assert second.duplicates == []


def test_archive_moves_duplicates_with_metadata() -> None:
    store = FakeBlobStore()
    dup = make_identity()
    store.add("incoming", dup.storage_key, b"pdf", T0)
    archived_at = datetime(2025, 7, 15, 9, 30, 5, tzinfo=timezone.utc)

    keys = archive_duplicates(store, "incoming", [dup], archived_at)

    expected = "duplicates/bards-inn/2025-07-15/20250715T093005_DailyReport.pdf"
    assert keys == [expected] == [archive_key(dup, archived_at)]
    assert store.keys("incoming") == [expected]
    metadata = store.objects[("incoming", expected)][2]
    assert metadata["original-key"] == dup.storage_key
    assert metadata["reason"] == "metadata-duplicate"


def test_failed_archive_leaves_file_in_place() -> None:
    store = FakeBlobStore()
    dup = make_identity()
    store.add("incoming", dup.storage_key, b"pdf", T0)
    store.fail_copy_for.add(dup.storage_key)

    keys = archive_duplicates(store, "incoming", [dup], T0)

    assert keys == []
    assert store.keys("incoming") == [dup.storage_key]


# endregion


# region Content pass
def test_content_duplicates_keyed_on_property_and_business_date() -> None:
    """Identify a re-sent report by what it says, not what it is called.

    Two uploads of the same night audit under different filenames collapse to one.

    Args:
        None.

    Returns:
        None.
    """
    first = ParsedReport(source=make_identity("daily-files/p/2025-07-15/a.pdf"), property_name="The Vine Inn", business_date="2025-07-14")
    resend = ParsedReport(source=make_identity("daily-files/p/2025-07-15/b.pdf"), property_name="THE VINE INN", business_date="2025-07-14")
    next_day = ParsedReport(source=make_identity("daily-files/p/2025-07-16/a.pdf"), property_name="THE VINE INN", business_date="2025-07-15")

    result = drop_content_duplicates([first, resend, next_day], "2025-07-14")

    assert result.kept == [first, next_day]
    assert result.skipped == [resend]


def test_failed_reports_pass_through_content_pass() -> None:
    failed_a = ParsedReport(source=make_identity("daily-files/p/2025-07-15/a.pdf"), parse_errors=["x"])
    failed_b = ParsedReport(source=make_identity("daily-files/p/2025-07-15/b.pdf"), parse_errors=["y"])

    result = drop_content_duplicates([failed_a, failed_b], "2025-07-14")

    assert result.kept == [failed_a, failed_b]


def test_missing_name_falls_back_to_path_property_and_run_date() -> None:
    a = ParsedReport(source=make_identity("daily-files/bards-inn/2025-07-15/a.txt"))
    b = ParsedReport(source=make_identity("daily-files/bards-inn/2025-07-15/b.txt"))

    result = drop_content_duplicates([a, b], "2025-07-14")

    assert result.kept == [a]
    assert result.skipped == [b]


# endregion
