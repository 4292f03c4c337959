from __future__ import annotations

from typing import Dict, List

import numpy as np
import pandas as pd
import pytest

from registry.core.reshaper import SLOT_RECORD_COLUMNS

EHR = "Hospital data (electronic health record)"
CLAIMS = "Insurance/claims data"
REGISTRY = "National registries"

SLOT_QUESTIONS = {
    'name': "Name of database {i}",
    'link': "Link to database {i}",
    'country': "Country of database {i}",
    'datatype': "What kind of data does database {i} contain?",
    'available': "Is database {i} publicly available?",
    'collecting': "Is database {i} still collecting data?",
}


def build_export(publications: List[Dict], n_slots: int = 3) -> pd.DataFrame:
    """Raw extraction export, as the screening tool writes it"""
    rows = []
    for pub in publications:
        row = {
            'Title': pub['title'],
            'Date of publication': pub.get('date', '2023-01-01'),
            'Contact of the lead author': pub.get('contact', ''),
        }
        databases = pub.get('databases', [])
        for i in range(1, n_slots + 1):
            db = databases[i - 1] if i <= len(databases) else {}
            for field, question in SLOT_QUESTIONS.items():
                row[question.format(i=i)] = db.get(field, '')
        rows.append(row)
    return pd.DataFrame(rows)


def build_slots(records: List[Dict], source: str = 'strategy_1') -> pd.DataFrame:
    """Slot Records, one per dict, numbered as separate publications"""
    rows = []
    for i, record in enumerate(records, 1):
        row = {col: np.nan for col in SLOT_RECORD_COLUMNS}
        row.update({
            'source': source,
            'publication_id': i,
            'slot': 1,
            'title': f"Paper {i}",
            'author_contact': f"author{i}@example.org",
        })
        row.update(record)
        rows.append(row)
    return pd.DataFrame(rows, columns=SLOT_RECORD_COLUMNS)


@pytest.fixture
def make_export():
    return build_export


@pytest.fixture
def make_slots():
    return build_slots


@pytest.fixture
def strategy_1_export() -> pd.DataFrame:
    return build_export([
        {
            'title': "Paper A", 'contact': "a@uni.edu",
            'databases': [
                {'name': "KPSC", 'link': "https://kp.org/research", 'country': "USA",
                 'datatype': EHR, 'available': "No", 'collecting': "Yes"},
                {'name': "UK Biobank", 'link': "https://ukbiobank.ac.uk", 'country': "UK",
                 'datatype': REGISTRY, 'available': "Yes", 'collecting': "Yes"},
            ],
        },
        {
            'title': "Paper B", 'contact': "b@uni.edu",
            'databases': [
                {'name': "Kaiser Permanente Southern California", 'link': "NI", 'country': "USA",
                 'datatype': EHR, 'available': "Other: unclear", 'collecting': "Yes"},
                {'name': "not identified", 'country': "France",
                 'datatype': "Other: hospital records", 'available': "No", 'collecting': "NA"},
            ],
        },
        {
            'title': "Paper C", 'contact': "c@hosp.org",
            'databases': [
                {'name': "Clalit", 'link': "https://clalit.co.il", 'country': "Israel",
                 'datatype': f"{CLAIMS}; {EHR}", 'available': "Yes", 'collecting': "Yes"},
                {'name': "Danish National Patient Registry", 'country': "Denmark",
                 'datatype': "Other: administrative", 'available': "No", 'collecting': "Yes"},
            ],
        },
    ])


@pytest.fixture
def strategy_2_export() -> pd.DataFrame:
    return build_export([
        {
            'title': "Paper D", 'contact': "d@x.org",
            'databases': [
                {'name': "Mount Sinai", 'country': "USA", 'datatype': EHR,
                 'available': "No", 'collecting': "No"},
                {'name': "KPSC", 'link': "https://kp.org/research", 'country': "USA",
                 'datatype': EHR, 'available': "NA", 'collecting': "Yes"},
            ],
        },
        {
            'title': "Paper E", 'contact': "e@x.org",
            'databases': [
                {'name': "mt sinai", 'country': "USA", 'datatype': EHR},
                {'name': "TriNetX", 'link': "https://trinetx.com", 'country': "USA",
                 'datatype': EHR, 'available': "No", 'collecting': "Yes"},
            ],
        },
        {
            'title': "Paper F", 'contact': "f@x.org",
            'databases': [
                {'name': "Mount Sinai Health System", 'link': "https://mountsinai.org",
                 'country': "USA", 'datatype': EHR, 'available': "No", 'collecting': "No"},
            ],
        },
    ], n_slots=2)


@pytest.fixture
def contact_sheet() -> pd.DataFrame:
    return pd.DataFrame({
        'Database': [
            "Kaiser Permanente Southern California (KPSC)",
            " Mount Sinai Health System ",
            "UK Biobank",
            "Epic Cosmos",
        ],
        'Contact person': ["Jane Doe", "John Roe", "Ann Poe", "Max Moe"],
        'Email': ["jane@kp.org", "john@mssm.edu", "ann@ukb.ac.uk", "max@epic.com"],
        'Contact form': [np.nan, "https://mountsinai.org/contact", np.nan, np.nan],
    })
