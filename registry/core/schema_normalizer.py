"""
Schema Normalizer - Survey Question Header Standardization

The extraction form exports one column per survey question, with the
question text as header (e.g. "Is database 2 publicly available?").
This module renames those headers to a fixed field set:

- Slot questions -> <field tag><slot number>  (e.g. availableDatabase2)
- Publication questions -> title / publication_date / author_contact
- Anything else passes through unchanged
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .exceptions import SchemaMismatchError

logger = logging.getLogger(__name__)


# ===== Data Classes =====

@dataclass
class SchemaNormalizationResult:
    """Result from header normalization"""
    dataframe: pd.DataFrame
    mappings: Dict[str, str] = field(default_factory=dict)
    slot_count: int = 0
    warnings: List[str] = field(default_factory=list)


# ===== Header Patterns =====

# Checked in order; a slot question must also mention "database"
SLOT_FIELD_PATTERNS: List[Tuple[str, str]] = [
    ('collectingDatabase', r'collect'),
    ('availableDatabase', r'availab'),
    ('typeDatabase', r'kind of data|type of data|data type'),
    ('countryDatabase', r'countr'),
    ('linkDatabase', r'link|url|website'),
    ('nameDatabase', r'name'),
]

SLOT_FIELDS = [tag for tag, _ in SLOT_FIELD_PATTERNS]

PUBLICATION_FIELD_PATTERNS: List[Tuple[str, str]] = [
    ('title', r'^\s*(publication\s*)?title'),
    ('publication_date', r'date'),
    ('author_contact', r'contact|e-?mail'),
]

SLOT_QUESTION_MARKER = re.compile(r'database', re.IGNORECASE)
SLOT_NUMBER = re.compile(r'\d+')


class SchemaNormalizer:
    """Rename free-text question headers to canonical slot fields"""

    def __init__(self):
        self.slot_patterns = [
            (tag, re.compile(pattern, re.IGNORECASE))
            for tag, pattern in SLOT_FIELD_PATTERNS
        ]
        self.publication_patterns = [
            (tag, re.compile(pattern, re.IGNORECASE))
            for tag, pattern in PUBLICATION_FIELD_PATTERNS
        ]

    def map_header(self, header: str) -> Optional[str]:
        """
        Map one header to its canonical name

        Args:
            header: Raw column header

        Returns:
            Canonical name, or None when no pattern applies

        Raises:
            SchemaMismatchError: Slot question without a slot number
        """
        text = str(header).strip()

        if SLOT_QUESTION_MARKER.search(text):
            for tag, pattern in self.slot_patterns:
                if pattern.search(text):
                    digit = SLOT_NUMBER.search(text)
                    if digit is None:
                        raise SchemaMismatchError(text, tag)
                    return f"{tag}{digit.group(0)}"
            return None

        for tag, pattern in self.publication_patterns:
            if pattern.search(text):
                return tag
        return None

    def normalize(self, df: pd.DataFrame) -> SchemaNormalizationResult:
        """
        Rename all headers of an export

        Args:
            df: Raw export DataFrame

        Returns:
            SchemaNormalizationResult with the renamed DataFrame
        """
        mappings = {}
        warnings = []
        slot_numbers = set()

        for column in df.columns:
            target = self.map_header(column)
            if target is None:
                if SLOT_QUESTION_MARKER.search(str(column)):
                    message = f"Unrecognized database question kept as-is: '{column}'"
                    logger.warning(message)
                    warnings.append(message)
                continue

            if target in mappings.values():
                message = f"Header '{column}' maps to '{target}' which is already taken, kept as-is"
                logger.warning(message)
                warnings.append(message)
                continue

            mappings[column] = target
            number = SLOT_NUMBER.search(target)
            if number:
                slot_numbers.add(int(number.group(0)))

        renamed = df.rename(columns=mappings)
        slot_count = max(slot_numbers) if slot_numbers else 0

        missing_names = [
            i for i in range(1, slot_count + 1)
            if f"nameDatabase{i}" not in renamed.columns
        ]
        for i in missing_names:
            message = f"Slot {i} has fields but no name question"
            logger.warning(message)
            warnings.append(message)

        logger.info(
            f"Normalized {len(mappings)}/{len(df.columns)} headers, "
            f"{slot_count} database slots detected"
        )

        return SchemaNormalizationResult(
            dataframe=renamed,
            mappings=mappings,
            slot_count=slot_count,
            warnings=warnings
        )
