"""
Registry Merger - Consolidation of Per-Source Database Records

Merges the reconciled records of both search strategies into one registry.
A database found by both strategies appears once per source after
concatenation, so the merger groups by canonical name a second time:

- occurrences are summed
- scalar fields take the first non-missing value after a stable sort on
  (country, datatype, available, collecting), missing values last
- links are unioned, contacts concatenated
- datatype flags are re-derived from the merged datatype text

It also attaches the supporting publications (title + author contact) as
positional column pairs pub_title_<k> / author_contact_<k>.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import pandas as pd

from shared.config import DATATYPE_FLAGS, UNIDENTIFIED_NAME, get_settings
from .datatype_expander import DatatypeExpander
from .exceptions import CanonicalizationConflictError
from .reconciler import DATABASE_RECORD_COLUMNS, GroupConflict, find_conflicts, join_unique

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Result of merge operation"""
    total_records: int
    sources_merged: List[str] = field(default_factory=list)
    shared_databases: List[str] = field(default_factory=list)  # found by more than one source
    publication_columns: int = 0
    conflicts: List[GroupConflict] = field(default_factory=list)  # disagreements between sources
    merged_dataframe: Optional[pd.DataFrame] = None
    merge_summary: str = ""


class RegistryMerger:
    """
    Merge per-source Database Records into one registry

    Args:
        link_separator: Separator used inside the link field
        contact_separator: Separator used inside the contacts field
        strict_consistency: Raise when sources disagree on an invariant field
    """

    TIE_BREAK_FIELDS = ['country', 'datatype', 'available', 'collecting']

    def __init__(
        self,
        link_separator: Optional[str] = None,
        contact_separator: Optional[str] = None,
        strict_consistency: Optional[bool] = None
    ):
        settings = get_settings()
        self.strict_consistency = (
            settings.strict_consistency if strict_consistency is None else strict_consistency
        )
        self.link_separator = settings.link_separator if link_separator is None else link_separator
        self.contact_separator = (
            settings.contact_separator if contact_separator is None else contact_separator
        )
        self.expander = DatatypeExpander()

    def merge(
        self,
        records: List[pd.DataFrame],
        source_names: Optional[List[str]] = None,
        slots: Optional[List[pd.DataFrame]] = None
    ) -> MergeResult:
        """
        Merge Database Records from several sources

        Args:
            records: Database Record tables, one per source
            source_names: Optional names for each source (for tracking)
            slots: Slot Records per source, used for the publication columns

        Returns:
            MergeResult with the merged DataFrame

        Raises:
            CanonicalizationConflictError: Sources disagree in strict mode
        """
        if not records:
            logger.warning("No record tables provided for merging")
            return MergeResult(total_records=0)

        if source_names is None:
            source_names = [f"source_{i+1}" for i in range(len(records))]

        if len(source_names) != len(records):
            raise ValueError(
                f"Number of source names ({len(source_names)}) "
                f"must match number of record tables ({len(records)})"
            )
        if len(set(source_names)) != len(source_names):
            raise ValueError(f"Source names must be distinct: {', '.join(source_names)}")

        logger.info(f"Merging {len(records)} record tables: {', '.join(source_names)}")

        tagged = []
        for df, source_name in zip(records, source_names):
            df = df.copy()
            df['source'] = source_name
            tagged.append(df)
        combined = pd.concat(tagged, ignore_index=True, sort=False)

        sources_per_name = combined.groupby('name', sort=False)['source'].nunique()
        shared = sources_per_name[sources_per_name > 1].index.tolist()

        # Each source contributes one value per field, so any remaining
        # disagreement is between sources
        conflicts = find_conflicts(
            combined[combined['name'].isin(shared)],
            source=" + ".join(source_names)
        )
        if conflicts and self.strict_consistency:
            raise CanonicalizationConflictError(conflicts)

        merged = self._collapse(combined)

        if slots:
            merged, width = self._attach_publications(merged, pd.concat(slots, ignore_index=True))
        else:
            width = 0

        summary = self._generate_merge_summary(records, merged, source_names, shared)

        logger.info(
            f"Merge complete: {len(combined)} source records -> {len(merged)} databases "
            f"({len(shared)} found by more than one source, {len(conflicts)} conflicts)"
        )

        return MergeResult(
            total_records=len(merged),
            sources_merged=source_names,
            shared_databases=shared,
            publication_columns=width,
            conflicts=conflicts,
            merged_dataframe=merged,
            merge_summary=summary
        )

    def _collapse(self, combined: pd.DataFrame) -> pd.DataFrame:
        """
        Second reconciliation pass over the concatenated records

        Args:
            combined: Concatenated Database Records with a source column

        Returns:
            One row per canonical name, ranked by occurrences
        """
        ordered = combined.sort_values(
            ['name'] + self.TIE_BREAK_FIELDS,
            na_position='last',
            kind='mergesort'
        )

        link_separator = self.link_separator
        contact_separator = self.contact_separator

        merged = ordered.groupby('name', sort=False).agg(
            country=('country', 'first'),
            datatype=('datatype', 'first'),
            available=('available', 'first'),
            collecting=('collecting', 'first'),
            link=('link', lambda s: join_unique(s, link_separator)),
            contacts=('contacts', lambda s: contact_separator.join(s.dropna().astype(str))),
            occurrences=('occurrences', 'sum'),
        ).reset_index()

        merged = self.expander.expand(merged.drop(columns=DATATYPE_FLAGS + ['type_other'], errors='ignore'))
        merged['occurrences'] = merged['occurrences'].astype(int)
        merged['collecting'] = merged['collecting'].fillna(UNIDENTIFIED_NAME)

        merged = sort_registry(merged)
        return merged[DATABASE_RECORD_COLUMNS]

    def _attach_publications(self, merged: pd.DataFrame, slots: pd.DataFrame):
        """
        Flatten supporting publications into positional column pairs

        Args:
            merged: Merged registry
            slots: Slot Records of all sources, in source order

        Returns:
            Tuple of (registry with pub columns, number of publication pairs)
        """
        pubs = slots.loc[
            slots['name'].isin(merged['name']),
            ['name', 'title', 'author_contact']
        ].drop_duplicates(keep='first')

        merged = merged.copy()
        if pubs.empty:
            return merged, 0

        pubs = pubs.assign(k=pubs.groupby('name', sort=False).cumcount() + 1)
        width = int(pubs['k'].max())

        for k in range(1, width + 1):
            at_k = pubs[pubs['k'] == k].set_index('name')
            merged[f'pub_title_{k}'] = merged['name'].map(at_k['title'])
            merged[f'author_contact_{k}'] = merged['name'].map(at_k['author_contact'])

        logger.info(f"Attached up to {width} publications per database")
        return merged, width

    def _generate_merge_summary(
        self,
        original_records: List[pd.DataFrame],
        merged_df: pd.DataFrame,
        source_names: List[str],
        shared: List[str]
    ) -> str:
        """
        Generate human-readable merge summary

        Args:
            original_records: Per-source Database Records
            merged_df: Merged registry
            source_names: Source names
            shared: Databases found by more than one source

        Returns:
            Formatted summary string
        """
        summary = f"""
=== Registry Merge Summary ===
Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}

Sources merged: {len(original_records)}
"""

        for i, (source_name, df) in enumerate(zip(source_names, original_records)):
            occurrences = int(df['occurrences'].sum()) if len(df) else 0
            summary += f"  {i+1}. {source_name}: {len(df)} databases, {occurrences} occurrences\n"

        summary += f"""
Databases after merge: {len(merged_df)}
Found by more than one source: {len(shared)}
Total occurrences: {int(merged_df['occurrences'].sum()) if len(merged_df) else 0}
"""
        return summary


def sort_registry(df: pd.DataFrame) -> pd.DataFrame:
    """Rank by occurrences (descending, missing last), then name, then datatype"""
    return df.sort_values(
        ['occurrences', 'name', 'datatype'],
        ascending=[False, True, True],
        na_position='last',
        kind='mergesort'
    ).reset_index(drop=True)
