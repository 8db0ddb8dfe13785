from typing import Iterable, List, Optional

from core.mapping_table import MappingTable
from core.models import AccountLine, MappedRecord, MappingEntry
from logger import logger


def resolve(source_code: str, property_name: Optional[str], table: MappingTable) -> Optional[MappingEntry]:
    """Find the mapping for ``source_code``: the property's own row first, then the global row."""
    entry = table.property_entry(source_code, property_name)
    if entry is not None:
        return entry
    return table.global_entry(source_code)


def map_account_lines(
    lines: Iterable[AccountLine],
    property_name: Optional[str],
    property_id: str,
    table: MappingTable,
) -> List[MappedRecord]:
    """Map report lines to NetSuite accounts.

    Lines without a mapping are dropped: unmapped codes must not reach the
    accounting export. Each drop is logged so the sheet can be corrected.
    """
    records: List[MappedRecord] = []
    for line in lines:
        entry = resolve(line.source_code, property_name, table)
        if entry is None:
            logger.warning(
                "No mapping found for source code; line dropped",
                source_code=line.source_code,
                description=line.description,
                amount=str(line.amount),
                property_name=property_name,
            )
            continue
        records.append(
            MappedRecord(
                source_code=line.source_code,
                source_description=line.description,
                source_amount=line.amount,
                target_code=entry.target_code,
                target_description=entry.target_name,
                mapped_amount=line.amount * entry.multiplier,
                payment_method=line.payment_method,
                property_id=property_id,
            )
        )
    return records
