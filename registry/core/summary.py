"""
Registry Summary - Aggregate Statistics for the Report

Counts only; rendering charts is left to the report layer.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd

from shared.config import DATATYPE_FLAGS, get_settings

logger = logging.getLogger(__name__)

ONGOING_LABELS = {1: 'collecting', 2: 'stopped', 3: 'unknown'}


@dataclass
class RegistrySummary:
    """Aggregate statistics of a final registry"""
    total_databases: int
    total_occurrences: int
    by_country: Dict[str, int] = field(default_factory=dict)
    by_datatype: Dict[str, int] = field(default_factory=dict)
    by_ongoing: Dict[str, int] = field(default_factory=dict)
    by_availability: Dict[str, int] = field(default_factory=dict)
    with_contact_email: int = 0
    top_databases: List[Dict] = field(default_factory=list)
    unidentified_records: int = 0
    unidentified_by_country: Dict[str, int] = field(default_factory=dict)


def _value_counts(series: pd.Series, missing_label: str = 'unspecified') -> Dict[str, int]:
    counts = series.fillna(missing_label).astype(str).value_counts()
    return {str(k): int(v) for k, v in counts.items()}


def summarize_registry(
    registry: pd.DataFrame,
    unidentified: Optional[pd.DataFrame] = None,
    top_n: Optional[int] = None
) -> RegistrySummary:
    """
    Compute summary statistics

    Args:
        registry: Final registry
        unidentified: "NI" slot records kept for diagnostics
        top_n: Number of databases listed by occurrences

    Returns:
        RegistrySummary
    """
    top_n = get_settings().top_n_summary if top_n is None else top_n

    occurrences = registry['occurrences'].fillna(0).astype(int)
    top = registry.assign(occurrences=occurrences).nlargest(top_n, 'occurrences', keep='first')

    summary = RegistrySummary(
        total_databases=len(registry),
        total_occurrences=int(occurrences.sum()),
        by_country=_value_counts(registry['country']),
        by_datatype={flag: int(registry[flag].fillna(0).sum()) for flag in DATATYPE_FLAGS},
        by_ongoing={
            ONGOING_LABELS.get(int(code), str(code)): int(count)
            for code, count in registry['ongoing'].value_counts().sort_index().items()
        },
        by_availability=_value_counts(registry['available']),
        with_contact_email=int(registry['email_contact_person_db'].notna().sum()),
        top_databases=[
            {'name': row['name'], 'occurrences': int(row['occurrences'])}
            for _, row in top.iterrows()
        ],
    )

    if unidentified is not None and len(unidentified):
        summary.unidentified_records = len(unidentified)
        summary.unidentified_by_country = _value_counts(unidentified['country'])

    return summary


def format_summary(summary: RegistrySummary) -> str:
    """Render a RegistrySummary as plain text"""
    text = f"""
=== Database Registry Summary ===
Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}

Databases: {summary.total_databases}
Supporting occurrences: {summary.total_occurrences}
With contact email: {summary.with_contact_email}
"""

    text += "\nData types:\n"
    for flag, count in summary.by_datatype.items():
        text += f"  {flag}: {count}\n"

    text += "\nData collection:\n"
    for label, count in summary.by_ongoing.items():
        text += f"  {label}: {count}\n"

    text += "\nPublicly available:\n"
    for label, count in summary.by_availability.items():
        text += f"  {label}: {count}\n"

    text += "\nCountries:\n"
    for country, count in summary.by_country.items():
        text += f"  {country}: {count}\n"

    if summary.top_databases:
        text += "\nMost cited databases:\n"
        for i, entry in enumerate(summary.top_databases, 1):
            text += f"  {i}. {entry['name']} ({entry['occurrences']})\n"

    if summary.unidentified_records:
        text += f"\nUnidentified database mentions: {summary.unidentified_records}\n"
        for country, count in summary.unidentified_by_country.items():
            text += f"  {country}: {count}\n"

    return text
