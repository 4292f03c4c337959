"""
Filter & Enrichment - Final Registry Assembly

Steps, in order:
1. Drop databases on the exclusion list (exact name, after trimming)
2. Outer-join the curated contact registry on the database name
3. Apply manual datatype corrections, then treat missing flags as 0
4. Recode the collection status to the ongoing code (1/2/3)
5. Rank and assign record_id
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from shared.config import (
    CONTACT_FIELDS,
    CONTACT_REGISTRY_COLUMNS,
    DATATYPE_FLAGS,
    DATATYPE_OVERRIDES,
    EXCLUDED_DATABASES,
    FINAL_COLUMNS,
    ONGOING_CODES,
    ONGOING_UNKNOWN,
)
from .exceptions import OverrideConfigurationError
from .name_canonicalizer import NameCanonicalizer
from .registry_merger import sort_registry

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentResult:
    """Result of the filter & enrichment stage"""
    registry: pd.DataFrame
    excluded: List[str] = field(default_factory=list)
    contacts_without_database: List[str] = field(default_factory=list)
    databases_without_contact: List[str] = field(default_factory=list)
    datatype_overrides_applied: List[str] = field(default_factory=list)


def exclude_databases(df: pd.DataFrame, excluded: Iterable[str]) -> pd.DataFrame:
    """Drop rows whose trimmed name is on the exclusion list"""
    excluded = set(excluded)
    names = df['name'].astype('string').str.strip()
    return df[~names.isin(excluded).fillna(False)].reset_index(drop=True)


def recode_ongoing(status) -> int:
    """Map a collection status to 1 (Yes), 2 (No) or 3 (anything else)"""
    if isinstance(status, str):
        return ONGOING_CODES.get(status.strip(), ONGOING_UNKNOWN)
    return ONGOING_UNKNOWN


class RegistryEnricher:
    """
    Filter, enrich and finalize the merged registry

    Args:
        canonicalizer: Vocabulary used to validate the datatype overrides
        excluded_databases: Names removed from both registry and contacts
        datatype_overrides: Canonical name -> flags forced to 1
    """

    def __init__(
        self,
        canonicalizer: Optional[NameCanonicalizer] = None,
        excluded_databases: Optional[Iterable[str]] = None,
        datatype_overrides: Optional[Dict[str, List[str]]] = None
    ):
        self.canonicalizer = canonicalizer or NameCanonicalizer()
        self.excluded_databases = frozenset(
            EXCLUDED_DATABASES if excluded_databases is None else excluded_databases
        )
        self.datatype_overrides = (
            DATATYPE_OVERRIDES if datatype_overrides is None else datatype_overrides
        )
        self._validate_overrides()

    def _validate_overrides(self):
        unknown = [
            name for name in self.datatype_overrides
            if not self.canonicalizer.is_known(name)
        ]
        if unknown:
            raise OverrideConfigurationError('Datatype', unknown)

        bad_flags = sorted({
            flag for flags in self.datatype_overrides.values()
            for flag in flags if flag not in DATATYPE_FLAGS
        })
        if bad_flags:
            raise OverrideConfigurationError('Datatype flag', bad_flags)

    def prepare_contacts(self, contacts: pd.DataFrame) -> pd.DataFrame:
        """
        Standardize the external contact registry

        Args:
            contacts: Contact sheet as read from disk

        Returns:
            DataFrame with name + CONTACT_FIELDS, trimmed, filtered, one row per name

        Raises:
            ValueError: No database name column found
        """
        rename = {}
        for col in contacts.columns:
            key = str(col).strip().lower()
            if key in CONTACT_REGISTRY_COLUMNS:
                target = CONTACT_REGISTRY_COLUMNS[key]
            elif key in ['name'] + CONTACT_FIELDS:
                target = key
            else:
                continue
            if target not in rename.values():
                rename[col] = target

        contacts = contacts.rename(columns=rename)
        if 'name' not in contacts.columns:
            raise ValueError(
                f"Contact registry has no database name column "
                f"(columns: {', '.join(map(str, contacts.columns))})"
            )

        for col in CONTACT_FIELDS:
            if col not in contacts.columns:
                contacts[col] = np.nan

        contacts = contacts[['name'] + CONTACT_FIELDS].copy()
        contacts['name'] = contacts['name'].astype('string').str.strip()
        contacts = contacts[contacts['name'].notna() & (contacts['name'] != '')]
        contacts['name'] = contacts['name'].astype(object)
        contacts = exclude_databases(contacts, self.excluded_databases)

        duplicated = contacts['name'].duplicated(keep='first')
        if duplicated.any():
            logger.warning(
                f"Contact registry lists {int(duplicated.sum())} names more than once, "
                f"keeping the first entry: {', '.join(contacts.loc[duplicated, 'name'])}"
            )
            contacts = contacts[~duplicated].reset_index(drop=True)

        return contacts

    def enrich(
        self,
        registry: pd.DataFrame,
        contacts: Optional[pd.DataFrame] = None
    ) -> EnrichmentResult:
        """
        Produce the Final Registry

        Args:
            registry: Merged registry (see RegistryMerger)
            contacts: Optional contact registry

        Returns:
            EnrichmentResult with the final table and join diagnostics
        """
        registry = registry.copy()
        registry['name'] = registry['name'].astype(str).str.strip()

        before = set(registry['name'])
        registry = exclude_databases(registry, self.excluded_databases)
        excluded = sorted(before - set(registry['name']))
        if excluded:
            logger.info(f"Excluded {len(excluded)} databases: {', '.join(excluded)}")

        contacts_only: List[str] = []
        registry_only: List[str] = []
        if contacts is not None:
            contacts = self.prepare_contacts(contacts)
            registry = registry.drop(columns=CONTACT_FIELDS, errors='ignore')
            joined = registry.merge(contacts, on='name', how='outer', indicator=True, sort=False)
            contacts_only = sorted(joined.loc[joined['_merge'] == 'right_only', 'name'])
            registry_only = sorted(joined.loc[joined['_merge'] == 'left_only', 'name'])
            registry = joined.drop(columns='_merge')
            if contacts_only:
                logger.info(
                    f"{len(contacts_only)} contact entries have no extracted database: "
                    + ", ".join(contacts_only)
                )
            if registry_only:
                logger.info(f"{len(registry_only)} databases have no contact entry")
        else:
            for col in CONTACT_FIELDS:
                registry[col] = np.nan

        registry, applied = self.apply_datatype_overrides(registry)

        for flag in DATATYPE_FLAGS:
            registry[flag] = pd.to_numeric(registry[flag], errors='coerce').fillna(0).astype(int)

        registry['ongoing'] = registry['collecting'].map(recode_ongoing).astype(int)
        registry['occurrences'] = registry['occurrences'].astype('Int64')

        registry = sort_registry(registry)
        registry.insert(0, 'record_id', np.arange(1, len(registry) + 1))

        pub_columns = [c for c in registry.columns if c.startswith(('pub_title_', 'author_contact_'))]
        pub_columns = sorted(pub_columns, key=lambda c: (int(c.rsplit('_', 1)[1]), not c.startswith('pub_title_')))
        for col in FINAL_COLUMNS:
            if col not in registry.columns:
                registry[col] = np.nan

        final = registry[FINAL_COLUMNS + pub_columns]

        logger.info(f"Final registry: {len(final)} databases")

        return EnrichmentResult(
            registry=final,
            excluded=excluded,
            contacts_without_database=contacts_only,
            databases_without_contact=registry_only,
            datatype_overrides_applied=applied,
        )

    def apply_datatype_overrides(self, registry: pd.DataFrame):
        """
        Force manually corrected datatype flags to 1

        Returns:
            Tuple of (registry, names the overrides were applied to)
        """
        registry = registry.copy()
        applied = []
        for name, flags in self.datatype_overrides.items():
            mask = registry['name'] == name
            if not mask.any():
                logger.debug(f"Datatype override for '{name}' has no matching row")
                continue
            for flag in flags:
                registry[flag] = registry[flag].astype('Int64')
                registry.loc[mask, flag] = 1
            applied.append(name)

        if applied:
            logger.info(f"Datatype overrides applied to: {', '.join(applied)}")
        return registry, applied
