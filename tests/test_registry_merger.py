from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from registry.core.exceptions import CanonicalizationConflictError
from registry.core.reconciler import GroupReconciler
from registry.core.registry_merger import RegistryMerger, sort_registry


@pytest.fixture
def reconcile(make_slots):
    reconciler = GroupReconciler(strict_consistency=False)

    def _reconcile(records, source):
        slots = make_slots(records, source)
        return slots, reconciler.reconcile(slots).records

    return _reconcile


@pytest.fixture
def merger() -> RegistryMerger:
    return RegistryMerger(link_separator="\n", contact_separator="; ")


def _row(df: pd.DataFrame, name: str) -> pd.Series:
    rows = df[df['name'] == name]
    assert len(rows) == 1
    return rows.iloc[0]


def test_occurrences_are_summed_across_sources(reconcile, merger) -> None:
    _, first = reconcile([{'name': "X"}, {'name': "Alpha"}, {'name': "Alpha"}], 'strategy_1')
    _, second = reconcile([{'name': "X"}, {'name': "X"}], 'strategy_2')

    result = merger.merge([first, second], ['strategy_1', 'strategy_2'])
    merged = result.merged_dataframe

    assert list(merged['name']) == ["X", "Alpha"]
    assert list(merged['occurrences']) == [3, 2]
    assert result.shared_databases == ["X"]
    assert result.total_records == 2


def test_equal_occurrences_rank_by_name(reconcile, merger) -> None:
    _, first = reconcile([{'name': "Zeta"}, {'name': "Beta"}], 'strategy_1')
    _, second = reconcile([{'name': "Alpha"}], 'strategy_2')

    merged = merger.merge([first, second]).merged_dataframe
    assert list(merged['name']) == ["Alpha", "Beta", "Zeta"]


def test_tie_break_prefers_sorted_non_missing_values(reconcile, merger) -> None:
    _, first = reconcile([{'name': "X", 'country': "USA", 'available': np.nan}], 'strategy_1')
    _, second = reconcile([{'name': "X", 'country': "Canada", 'available': "Yes"}], 'strategy_2')

    row = _row(merger.merge([first, second]).merged_dataframe, "X")
    assert row['country'] == "Canada"
    assert row['available'] == "Yes"


def test_missing_fields_fall_back_to_other_source(reconcile, merger) -> None:
    _, first = reconcile([{'name': "X", 'datatype': np.nan}], 'strategy_1')
    _, second = reconcile(
        [{'name': "X", 'datatype': "Hospital data (electronic health record)"}], 'strategy_2'
    )

    row = _row(merger.merge([first, second]).merged_dataframe, "X")
    assert row['datatype'] == "Hospital data (electronic health record)"
    assert row['type_ehr'] == 1


def test_missing_collection_status_becomes_placeholder(reconcile, merger) -> None:
    _, first = reconcile([{'name': "X"}], 'strategy_1')
    _, second = reconcile([{'name': "Y", 'collecting': "Yes"}], 'strategy_2')

    merged = merger.merge([first, second]).merged_dataframe
    assert _row(merged, "X")['collecting'] == "NI"
    assert _row(merged, "Y")['collecting'] == "Yes"


def test_links_and_contacts_are_combined(reconcile, merger) -> None:
    _, first = reconcile([{'name': "X", 'link': "https://a.org"}], 'strategy_1')
    _, second = reconcile([
        {'name': "X", 'link': "https://b.org"},
        {'name': "X", 'link': "https://a.org"},
    ], 'strategy_2')

    row = _row(merger.merge([first, second]).merged_dataframe, "X")
    assert row['link'] == "https://a.org\nhttps://b.org"
    assert row['contacts'] == (
        "author1@example.org; author1@example.org; author2@example.org"
    )


def test_publications_are_attached_once_per_pair(reconcile, merger) -> None:
    slots_1, first = reconcile([{'name': "X"}, {'name': "Y"}], 'strategy_1')
    slots_2, second = reconcile([{'name': "X"}, {'name': "X"}], 'strategy_2')

    result = merger.merge([first, second], slots=[slots_1, slots_2])
    row = _row(result.merged_dataframe, "X")

    assert result.publication_columns == 2
    assert (row['pub_title_1'], row['author_contact_1']) == ("Paper 1", "author1@example.org")
    assert (row['pub_title_2'], row['author_contact_2']) == ("Paper 2", "author2@example.org")
    assert 'pub_title_3' not in result.merged_dataframe.columns

    y_row = _row(result.merged_dataframe, "Y")
    assert y_row['pub_title_1'] == "Paper 2"
    assert pd.isna(y_row['pub_title_2'])


def test_source_names_must_match_tables(reconcile, merger) -> None:
    _, first = reconcile([{'name': "X"}], 'strategy_1')
    with pytest.raises(ValueError):
        merger.merge([first], ['strategy_1', 'strategy_2'])


def test_no_tables(merger) -> None:
    result = merger.merge([])
    assert result.total_records == 0
    assert result.merged_dataframe is None


def test_merge_summary_lists_sources(reconcile, merger) -> None:
    _, first = reconcile([{'name': "X"}], 'strategy_1')
    _, second = reconcile([{'name': "X"}], 'strategy_2')

    summary = merger.merge([first, second], ['strategy_1', 'strategy_2']).merge_summary
    assert "strategy_1: 1 databases, 1 occurrences" in summary
    assert "Found by more than one source: 1" in summary


def test_sort_registry_puts_missing_occurrences_last() -> None:
    df = pd.DataFrame({
        'name': ["B", "A", "C", "D"],
        'datatype': [np.nan] * 4,
        'occurrences': pd.array([1, pd.NA, 5, 1], dtype='Int64'),
    })
    assert list(sort_registry(df)['name']) == ["C", "B", "D", "A"]


def test_disagreement_between_sources_is_reported(reconcile, merger) -> None:
    _, first = reconcile([{'name': "TriNetX", 'country': "USA", 'collecting': "Yes"}], 'strategy_1')
    _, second = reconcile([{'name': "TriNetX", 'country': "Canada", 'collecting': "No"}], 'strategy_2')

    result = merger.merge([first, second], ['strategy_1', 'strategy_2'])

    fields = sorted(c.field_name for c in result.conflicts)
    assert fields == ["collecting", "country"]
    assert all(c.name == "TriNetX" for c in result.conflicts)
    assert "strategy_1 + strategy_2" in result.conflicts[0].describe()


def test_agreeing_sources_have_no_conflicts(reconcile, merger) -> None:
    _, first = reconcile([{'name': "TriNetX", 'country': "USA", 'collecting': np.nan}], 'strategy_1')
    _, second = reconcile([{'name': "TriNetX", 'country': "USA", 'collecting': "Yes"}], 'strategy_2')

    assert merger.merge([first, second]).conflicts == []


def test_disagreement_between_sources_raises_in_strict_mode(reconcile) -> None:
    _, first = reconcile([{'name': "TriNetX", 'country': "USA"}], 'strategy_1')
    _, second = reconcile([{'name': "TriNetX", 'country': "Canada"}], 'strategy_2')

    strict = RegistryMerger(strict_consistency=True)
    with pytest.raises(CanonicalizationConflictError):
        strict.merge([first, second], ['strategy_1', 'strategy_2'])


def test_source_names_must_be_distinct(reconcile, merger) -> None:
    _, first = reconcile([{'name': "TriNetX"}], 'strategy_1')
    _, second = reconcile([{'name': "TriNetX"}], 'strategy_2')

    with pytest.raises(ValueError, match="distinct"):
        merger.merge([first, second], ['s', 's'])
