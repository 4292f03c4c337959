"""
Group Reconciler - One Database Record per Canonical Name

Collapses all Slot Records of one canonical database (within one export)
into a single row:

- link: distinct non-missing links, one per line
- country / datatype / collecting / available: first non-missing value
  in source order
- available: forced for the databases listed in AVAILABILITY_OVERRIDES
- contacts: every author contact, joined (no dedup)
- occurrences: number of contributing Slot Records

The "NI" placeholder group is never collapsed: its rows describe distinct,
not-yet-identified databases and are returned separately for diagnostics.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from shared.config import AVAILABILITY_OVERRIDES, UNIDENTIFIED_NAME, get_settings
from .datatype_expander import DatatypeExpander
from .exceptions import CanonicalizationConflictError, OverrideConfigurationError
from .name_canonicalizer import NameCanonicalizer
from .reshaper import coerce_other_to_missing

logger = logging.getLogger(__name__)


INVARIANT_FIELDS = ['country', 'datatype', 'collecting']

DATABASE_RECORD_COLUMNS = [
    'name', 'country', 'datatype', 'available', 'collecting', 'link',
    'contacts', 'occurrences', 'type_ehr', 'type_insurance_claims',
    'type_disease_network', 'type_national_registry', 'type_other',
]


# ===== Data Classes =====

@dataclass
class GroupConflict:
    """A canonical database whose records disagree on an invariant field"""
    name: str
    field_name: str
    values: List[str]
    source: Optional[str] = None

    def describe(self) -> str:
        where = f" in {self.source}" if self.source else ""
        return (
            f"'{self.name}' has {len(self.values)} distinct {self.field_name} values{where}: "
            + " | ".join(self.values)
        )


@dataclass
class ReconciliationResult:
    """Result of reconciling one export"""
    records: pd.DataFrame
    unidentified: pd.DataFrame
    conflicts: List[GroupConflict] = field(default_factory=list)


# ===== Helpers =====

def join_unique(values, separator: str):
    """Join distinct non-missing values in first-seen order, NaN if none"""
    unique = []
    for value in values:
        if value is None or (not isinstance(value, str) and pd.isna(value)):
            continue
        for part in str(value).split(separator) if separator else [str(value)]:
            part = part.strip()
            if part and part.upper() != UNIDENTIFIED_NAME and part not in unique:
                unique.append(part)
    return separator.join(unique) if unique else np.nan


def join_all(values, separator: str) -> str:
    """Join every value, rendering missing ones as NA"""
    return separator.join(
        'NA' if value is None or (not isinstance(value, str) and pd.isna(value)) else str(value)
        for value in values
    )


def find_conflicts(
    slots: pd.DataFrame,
    fields: Optional[List[str]] = None,
    source: Optional[str] = None
) -> List[GroupConflict]:
    """
    Consistency check for fields that should not vary within a database

    Args:
        slots: Slot Records (any number of canonical names)
        fields: Fields to check (default: country, datatype, collecting)
        source: Label used in the conflict description

    Returns:
        One GroupConflict per (name, field) with more than one distinct value
    """
    fields = fields or INVARIANT_FIELDS
    identified = slots[slots['name'] != UNIDENTIFIED_NAME]
    conflicts = []

    for field_name in fields:
        if field_name not in identified.columns:
            continue
        for name, group in identified.groupby('name', sort=False):
            values = list(dict.fromkeys(str(v).strip() for v in group[field_name].dropna()))
            if len(values) > 1:
                conflicts.append(GroupConflict(name=name, field_name=field_name, values=values, source=source))

    for conflict in conflicts:
        logger.warning(f"⚠️ Canonicalization conflict: {conflict.describe()}")

    return conflicts


class GroupReconciler:
    """
    Reconcile the Slot Records of one export

    Args:
        canonicalizer: Vocabulary used to validate the availability overrides
        availability_overrides: Canonical name -> forced availability
        strict_consistency: Raise instead of warn on within-group conflicts
    """

    def __init__(
        self,
        canonicalizer: Optional[NameCanonicalizer] = None,
        availability_overrides: Optional[Dict[str, str]] = None,
        strict_consistency: Optional[bool] = None,
        link_separator: Optional[str] = None,
        contact_separator: Optional[str] = None
    ):
        settings = get_settings()
        self.canonicalizer = canonicalizer or NameCanonicalizer()
        self.availability_overrides = (
            AVAILABILITY_OVERRIDES if availability_overrides is None else availability_overrides
        )
        self.strict_consistency = (
            settings.strict_consistency if strict_consistency is None else strict_consistency
        )
        self.link_separator = settings.link_separator if link_separator is None else link_separator
        self.contact_separator = (
            settings.contact_separator if contact_separator is None else contact_separator
        )
        self.expander = DatatypeExpander()

        unknown = [
            name for name in self.availability_overrides
            if not self.canonicalizer.is_known(name)
        ]
        if unknown:
            raise OverrideConfigurationError('Availability', unknown)

    def reconcile(self, slots: pd.DataFrame, source: Optional[str] = None) -> ReconciliationResult:
        """
        Collapse Slot Records into Database Records

        Args:
            slots: Slot Records of one export (see Reshaper)
            source: Export label for logging

        Returns:
            ReconciliationResult

        Raises:
            CanonicalizationConflictError: Conflicts found in strict mode
        """
        if source is None and 'source' in slots.columns and len(slots):
            source = str(slots['source'].iloc[0])

        slots = slots.copy()
        slots['available'] = coerce_other_to_missing(slots['available'])
        slots['collecting'] = coerce_other_to_missing(slots['collecting'])

        is_unidentified = slots['name'] == UNIDENTIFIED_NAME
        unidentified = slots[is_unidentified].reset_index(drop=True)
        identified = slots[~is_unidentified]

        conflicts = find_conflicts(identified, source=source)
        if conflicts and self.strict_consistency:
            raise CanonicalizationConflictError(conflicts)

        if identified.empty:
            logger.warning(f"No identified databases in {source or 'export'}")
            records = self.expander.expand(
                pd.DataFrame(columns=DATABASE_RECORD_COLUMNS[:8])
            )
            return ReconciliationResult(
                records=records[DATABASE_RECORD_COLUMNS],
                unidentified=unidentified,
                conflicts=conflicts,
            )

        link_separator = self.link_separator
        contact_separator = self.contact_separator

        records = identified.groupby('name', sort=False).agg(
            country=('country', 'first'),
            datatype=('datatype', 'first'),
            available=('available', 'first'),
            collecting=('collecting', 'first'),
            link=('link', lambda s: join_unique(s, link_separator)),
            contacts=('author_contact', lambda s: join_all(s, contact_separator)),
            occurrences=('slot', 'size'),
        ).reset_index()

        records = self.apply_availability_overrides(records)
        records = self.expander.expand(records)
        records['occurrences'] = records['occurrences'].astype(int)

        logger.info(
            f"Reconciled {source or 'export'}: {len(identified)} slot records -> "
            f"{len(records)} databases ({len(unidentified)} unidentified, "
            f"{len(conflicts)} conflicts)"
        )

        return ReconciliationResult(
            records=records[DATABASE_RECORD_COLUMNS],
            unidentified=unidentified,
            conflicts=conflicts,
        )

    def apply_availability_overrides(self, records: pd.DataFrame) -> pd.DataFrame:
        """Force availability for the manually reviewed databases"""
        records = records.copy()
        forced = records['name'].map(self.availability_overrides)
        mask = forced.notna()
        if mask.any():
            records['available'] = records['available'].astype(object)
            records.loc[mask, 'available'] = forced[mask]
            logger.info(
                f"Availability forced for {int(mask.sum())} databases: "
                + ", ".join(records.loc[mask, 'name'])
            )
        return records
