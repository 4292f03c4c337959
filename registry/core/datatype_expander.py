"""
Datatype Expander

Splits the free-text "kind of data" answer into four independent 0/1
category flags plus the free text of the "Other:" category.
"""

import re
import logging
from typing import Dict, Optional

import pandas as pd

from shared.config import DATATYPE_CATEGORIES

logger = logging.getLogger(__name__)

OTHER_SEGMENT = re.compile(r'Other:\s*([^;]*)', re.IGNORECASE)
QUOTE_CHARS = '"\'“”‘’'


def extract_other_type(value):
    """
    Extract the text of the "Other:" category

    Args:
        value: Datatype free text

    Returns:
        Trimmed text without quotes, or <NA> when absent or empty
    """
    if not isinstance(value, str):
        return pd.NA
    match = OTHER_SEGMENT.search(value)
    if match is None:
        return pd.NA
    text = match.group(1).strip().strip(QUOTE_CHARS).strip()
    return text or pd.NA


class DatatypeExpander:
    """Derive type_* columns from a datatype text column"""

    def __init__(self, categories: Optional[Dict[str, str]] = None):
        self.categories = categories or DATATYPE_CATEGORIES

    def expand(self, df: pd.DataFrame, column: str = 'datatype') -> pd.DataFrame:
        """
        Add category flags and type_other to a copy of df

        Flags are 1 (label present), 0 (label absent) or <NA> when the
        datatype text itself is missing.
        """
        df = df.copy()
        texts = df[column]
        present = texts.notna()

        for flag, label in self.categories.items():
            contains = texts.astype('string').str.contains(label, regex=False)
            df[flag] = contains.astype('Int64').where(present, pd.NA)

        df['type_other'] = texts.map(extract_other_type).astype('string')

        logger.debug(
            f"Expanded datatype for {len(df)} rows: "
            + ", ".join(f"{flag}={int(df[flag].sum())}" for flag in self.categories)
        )
        return df
