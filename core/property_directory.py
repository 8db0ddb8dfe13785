"""NetSuite identifiers per hotel property, keyed by normalized property name."""

import json
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional

from core.models import PropertyConfig
from logger import logger

DEFAULT_LOCATION_ID = "1"
DEFAULT_SUBSIDIARY_ID = "5"
DEFAULT_SUBSIDIARY_FULL_NAME = "Parent Company : Warren Family Hotels : Warren Resort Hotels, Inc."
DEFAULT_DEPOSIT_ACCOUNT = "10010-528"

# (property name, location id, subsidiary id, location name, credit card deposit account)
_WARREN_PROPERTIES = (
    ("THE BARD'S INN HOTEL", "24", "26", "Bard's Inn", "10070-696"),
    ("Crown City Inn", "20", "35", "Crown City Inn", "10130-715"),
    ("Driftwood Inn", "3", "3", "Driftwood Inn", "10050-535"),
    ("El Bonita Motel", "18", "22", "El Bonita Motel", "10172-755"),
    ("LAKESIDE LODGE AND SUITES", "19", "16", "Lakeside Lodge and Suites", "10210-678"),
    ("MARINA BEACH MOTEL", "4", "5", "Marina Beach Motel", "10010-528"),
    ("BW Plus PONDERAY MOUNTAIN LODGE", "17", "12", "BW Plus Ponderay Mountain Lodge", "10230-681"),
    ("Best Western Sawtooth Inn & Suites", "16", "14", "Best Western Sawtooth Inn & Suites", "10250-684"),
    ("Best Western University Lodge", "14", "20", "Best Western University Lodge", "10270-687"),
    ("THE VINE INN", "15", "18", "The Vine Inn", "10150-675"),
    ("Best Western Windsor Inn", "25", "24", "Best Western Windsor Inn", "10290-707"),
)


def normalize_property_name(name: Optional[str]) -> str:
    return (name or "").strip().upper()


class PropertyDirectory:
    """Immutable lookup from property name to ``PropertyConfig``."""

    def __init__(self, configs: Iterable[PropertyConfig]) -> None:
        table = {}
        for config in configs:
            key = normalize_property_name(config.property_name)
            if key in table:
                logger.warning("Duplicate property configuration ignored", property_name=config.property_name)
                continue
            table[key] = config
        self._configs: Mapping[str, PropertyConfig] = MappingProxyType(table)

    def __len__(self) -> int:
        return len(self._configs)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_property_name(name) in self._configs

    def lookup(self, name: Optional[str]) -> Optional[PropertyConfig]:
        return self._configs.get(normalize_property_name(name))

    def resolve(self, name: str) -> PropertyConfig:
        """Return the configured entry or a parent-company default for unknown properties."""
        config = self.lookup(name)
        if config is not None:
            return config
        logger.warning(
            "Property configuration not found; using parent-company defaults",
            property_name=name,
            normalized_name=normalize_property_name(name),
            available_properties=list(self._configs.keys()),
        )
        return PropertyConfig(
            property_name=name,
            location_id=DEFAULT_LOCATION_ID,
            subsidiary_id=DEFAULT_SUBSIDIARY_ID,
            subsidiary_full_name=DEFAULT_SUBSIDIARY_FULL_NAME,
            location_name=name,
            credit_card_deposit_account=DEFAULT_DEPOSIT_ACCOUNT,
        )

    def known_names(self) -> List[str]:
        return [config.property_name for config in self._configs.values()]


def default_property_directory() -> PropertyDirectory:
    return PropertyDirectory(
        PropertyConfig(
            property_name=name,
            location_id=location_id,
            subsidiary_id=subsidiary_id,
            subsidiary_full_name=name,
            location_name=location_name,
            credit_card_deposit_account=deposit,
        )
        for name, location_id, subsidiary_id, location_name, deposit in _WARREN_PROPERTIES
    )


def load_property_directory(path: Optional[str] = None) -> PropertyDirectory:
    """Load the directory from a JSON list of ``PropertyConfig`` objects, or fall back to the built-in table."""
    if not path:
        return default_property_directory()
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    configs = [PropertyConfig.model_validate(item) for item in payload]
    logger.info("Loaded property directory", path=path, total_properties=len(configs))
    return PropertyDirectory(configs)
