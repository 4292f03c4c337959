"""
Reshaper - Wide Publication Rows to Long Slot Records

Each publication row carries up to N parallel database slots. The reshaper
emits one Slot Record per (publication, slot) that names a database, after
folding the extraction tool's sentinel strings into real missing values.
"""

import re
import logging
from typing import Optional

import numpy as np
import pandas as pd

from .name_canonicalizer import NameCanonicalizer

logger = logging.getLogger(__name__)


# Slot field tag -> Slot Record column
SLOT_COLUMNS = {
    'nameDatabase': 'name',
    'linkDatabase': 'link',
    'countryDatabase': 'country',
    'typeDatabase': 'datatype',
    'availableDatabase': 'available',
    'collectingDatabase': 'collecting',
}

PUBLICATION_COLUMNS = ['title', 'publication_date', 'author_contact']

SLOT_RECORD_COLUMNS = (
    ['source', 'publication_id', 'slot']
    + PUBLICATION_COLUMNS
    + list(SLOT_COLUMNS.values())
)

MISSING_STRINGS = {'', 'NA', 'N/A', 'nan'}
OTHER_FILLER = re.compile(r'other\b', re.IGNORECASE)


# ===== Missing Value Normalization =====

def is_other_filler(value) -> bool:
    """True for the "Other: ..." answer the form stores instead of a missing value"""
    return isinstance(value, str) and OTHER_FILLER.match(value.strip()) is not None


def coerce_other_to_missing(series: pd.Series) -> pd.Series:
    """Replace "Other:" filler answers with missing values"""
    return series.mask(series.map(is_other_filler).astype(bool), np.nan)


def normalize_missing(df: pd.DataFrame) -> pd.DataFrame:
    """
    Fold sentinel strings into missing values

    - Empty / whitespace-only strings and "NA" in any text column
    - "NI" in link columns
    - "Other:" filler in availability and collection-status columns

    Args:
        df: Normalized export DataFrame

    Returns:
        New DataFrame with one explicit missing representation
    """
    df = df.copy()

    for col in df.select_dtypes(include=['object', 'string']).columns:
        df[col] = df[col].map(
            lambda x: np.nan if isinstance(x, str) and x.strip() in MISSING_STRINGS else x
        )

    for col in df.columns:
        col_name = str(col)
        if col_name.startswith('linkDatabase'):
            df[col] = df[col].mask(
                df[col].map(lambda x: isinstance(x, str) and x.strip().upper() == 'NI').astype(bool),
                np.nan
            )
        elif col_name.startswith(('availableDatabase', 'collectingDatabase')):
            df[col] = coerce_other_to_missing(df[col])

    return df


class Reshaper:
    """
    Expand publication rows into Slot Records

    The slot field set is fixed (SLOT_COLUMNS); only the slot count varies
    between exports.
    """

    def __init__(self, canonicalizer: Optional[NameCanonicalizer] = None):
        self.canonicalizer = canonicalizer or NameCanonicalizer()

    def reshape(
        self,
        df: pd.DataFrame,
        slot_count: int,
        source: str = 'source_1'
    ) -> pd.DataFrame:
        """
        Reshape one normalized export

        Args:
            df: Export with canonical headers (see SchemaNormalizer)
            slot_count: Number of database slots per row
            source: Label of the export, copied onto every Slot Record

        Returns:
            DataFrame of Slot Records ordered by publication, then slot
        """
        if slot_count < 1:
            raise ValueError(f"Export '{source}' has no database slots")

        df = normalize_missing(df).reset_index(drop=True)

        publication = pd.DataFrame(index=df.index)
        publication['publication_id'] = np.arange(1, len(df) + 1)
        for col in PUBLICATION_COLUMNS:
            publication[col] = df[col] if col in df.columns else np.nan

        slot_frames = []
        for slot in range(1, slot_count + 1):
            frame = publication.copy()
            frame['slot'] = slot
            for tag, column in SLOT_COLUMNS.items():
                source_col = f"{tag}{slot}"
                frame[column] = df[source_col] if source_col in df.columns else np.nan
            slot_frames.append(frame)

        long_df = pd.concat(slot_frames, ignore_index=True)

        long_df['name'] = self.canonicalizer.canonicalize_series(long_df['name'])
        has_name = long_df['name'].map(lambda x: isinstance(x, str) and x.strip() != '').astype(bool)
        dropped = int((~has_name).sum())
        long_df = long_df[has_name]

        long_df = long_df.sort_values(
            ['publication_id', 'slot'], kind='mergesort'
        ).reset_index(drop=True)
        long_df['source'] = source

        logger.info(
            f"Reshaped {source}: {len(df)} publications -> {len(long_df)} slot records "
            f"({dropped} empty slots dropped)"
        )

        return long_df[SLOT_RECORD_COLUMNS]
