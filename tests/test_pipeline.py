from __future__ import annotations

import pandas as pd
import pytest

from registry.core import RegistryPipeline
from registry.core.exceptions import CanonicalizationConflictError, SchemaMismatchError
from shared.config import FINAL_COLUMNS

KPSC = "Kaiser Permanente Southern California (KPSC)"
SINAI = "Mount Sinai Health System"
CLALIT = "Clalit Health Services"
DNPR = "Danish National Patient Registry (DNPR)"


@pytest.fixture
def result(strategy_1_export, strategy_2_export, contact_sheet):
    return RegistryPipeline().run(strategy_1_export, strategy_2_export, contact_sheet)


def _row(df: pd.DataFrame, name: str) -> pd.Series:
    rows = df[df['name'] == name]
    assert len(rows) == 1
    return rows.iloc[0]


def test_registry_ranking(result) -> None:
    registry = result.registry
    assert list(registry['name']) == [KPSC, SINAI, CLALIT, DNPR, "TriNetX", "Epic Cosmos"]
    assert list(registry['record_id']) == [1, 2, 3, 4, 5, 6]
    assert list(registry['occurrences'].iloc[:5]) == [3, 3, 1, 1, 1]
    assert pd.isna(registry['occurrences'].iloc[5])


def test_excluded_and_unidentified(result) -> None:
    assert result.excluded == ["UK Biobank"]
    assert "UK Biobank" not in set(result.registry['name'])
    assert len(result.unidentified) == 1
    assert result.unidentified.loc[0, 'country'] == "France"
    assert result.conflicts == []


def test_reconciled_fields(result) -> None:
    registry = result.registry

    kpsc = _row(registry, KPSC)
    assert kpsc['available'] == "No"
    assert kpsc['ongoing'] == 1
    assert kpsc['link'] == "https://kp.org/research"
    assert kpsc['email_contact_person_db'] == "jane@kp.org"

    sinai = _row(registry, SINAI)
    assert sinai['ongoing'] == 2
    assert sinai['link'] == "https://mountsinai.org"
    assert sinai['name_contact_person_db'] == "John Roe"

    clalit = _row(registry, CLALIT)
    assert clalit['available'] == "No"
    assert clalit['type_ehr'] == 1
    assert clalit['type_insurance_claims'] == 1

    dnpr = _row(registry, DNPR)
    assert dnpr['type_national_registry'] == 1
    assert dnpr['type_other'] == "administrative"


def test_supporting_publications(result) -> None:
    kpsc = _row(result.registry, KPSC)
    assert [kpsc[f'pub_title_{k}'] for k in (1, 2, 3)] == ["Paper A", "Paper B", "Paper D"]
    assert kpsc['author_contact_3'] == "d@x.org"

    trinetx = _row(result.registry, "TriNetX")
    assert trinetx['pub_title_1'] == "Paper E"
    assert pd.isna(trinetx['pub_title_2'])


def test_output_columns(result) -> None:
    columns = list(result.registry.columns)
    assert columns[:len(FINAL_COLUMNS)] == FINAL_COLUMNS
    assert columns[len(FINAL_COLUMNS):] == [
        'pub_title_1', 'author_contact_1',
        'pub_title_2', 'author_contact_2',
        'pub_title_3', 'author_contact_3',
    ]


def test_per_source_records(result) -> None:
    assert set(result.per_source) == {'strategy_1', 'strategy_2'}
    strategy_2 = result.per_source['strategy_2']
    assert _row(strategy_2, SINAI)['occurrences'] == 3
    assert set(result.slots['source']) == {'strategy_1', 'strategy_2'}


def test_summary(result) -> None:
    summary = result.summary
    assert summary.total_databases == 6
    assert summary.total_occurrences == 9
    assert summary.unidentified_records == 1
    assert summary.top_databases[0] == {'name': KPSC, 'occurrences': 3}
    assert "Databases: 6" in result.summary_text


def test_without_contact_registry(strategy_1_export, strategy_2_export) -> None:
    result = RegistryPipeline().run(strategy_1_export, strategy_2_export)
    assert "Epic Cosmos" not in set(result.registry['name'])
    assert result.registry['email_contact_person_db'].isna().all()


def test_schema_mismatch(strategy_1_export, strategy_2_export) -> None:
    broken = strategy_2_export.rename(columns={"Name of database 1": "Name of database"})
    with pytest.raises(SchemaMismatchError):
        RegistryPipeline().run(strategy_1_export, broken)


def test_strict_mode_rejects_conflicts(make_export, strategy_2_export) -> None:
    conflicting = make_export([
        {'title': "Paper A", 'databases': [{'name': "KPSC", 'country': "USA"}]},
        {'title': "Paper B", 'databases': [{'name': "KPSC", 'country': "Canada"}]},
    ])

    lenient = RegistryPipeline(strict_consistency=False).run(conflicting, strategy_2_export)
    assert len(lenient.conflicts) == 1
    assert any("country" in w for w in lenient.warnings)

    with pytest.raises(CanonicalizationConflictError):
        RegistryPipeline(strict_consistency=True).run(conflicting, strategy_2_export)


@pytest.fixture
def disagreeing_exports(make_export):
    first = make_export([
        {'title': "Paper A", 'databases': [
            {'name': "TriNetX", 'country': "USA", 'collecting': "Yes"},
        ]},
    ])
    second = make_export([
        {'title': "Paper B", 'databases': [
            {'name': "TriNetX", 'country': "Canada", 'collecting': "No"},
        ]},
    ])
    return first, second


def test_disagreement_between_sources_is_reported(disagreeing_exports) -> None:
    result = RegistryPipeline(strict_consistency=False).run(*disagreeing_exports)

    assert sorted(c.field_name for c in result.conflicts) == ["collecting", "country"]
    assert sum("TriNetX" in w for w in result.warnings) == 2
    assert _row(result.registry, "TriNetX")['occurrences'] == 2


def test_strict_mode_rejects_disagreement_between_sources(disagreeing_exports) -> None:
    with pytest.raises(CanonicalizationConflictError) as excinfo:
        RegistryPipeline(strict_consistency=True).run(*disagreeing_exports)
    assert {c.field_name for c in excinfo.value.conflicts} == {"collecting", "country"}


@pytest.mark.parametrize('labels', [["s", "s"], ["only_one"]])
def test_source_labels_must_be_two_distinct_names(labels) -> None:
    with pytest.raises(ValueError):
        RegistryPipeline(source_names=labels)


def test_custom_source_labels_keep_both_sources(make_export) -> None:
    export = make_export([{'title': "Paper A", 'databases': [{'name': "TriNetX"}]}])
    result = RegistryPipeline(source_names=["pubmed", "embase"]).run(export, export.copy())

    assert set(result.per_source) == {"pubmed", "embase"}
    assert _row(result.registry, "TriNetX")['occurrences'] == 2


def test_no_identified_databases(make_export) -> None:
    first = make_export([
        {'title': "Paper A", 'databases': [{'name': "not identified", 'country': "France"}]},
    ])
    second = make_export([
        {'title': "Paper B", 'databases': [{'name': "NI", 'country': "Spain"}]},
    ])
    result = RegistryPipeline().run(first, second)

    assert result.registry.empty
    assert list(result.registry.columns) == FINAL_COLUMNS
    assert list(result.unidentified['country']) == ["France", "Spain"]
    assert result.summary.total_databases == 0
    assert result.summary.unidentified_records == 2
