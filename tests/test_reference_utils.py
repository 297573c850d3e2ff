from datetime import date

from routes.reference_utils import next_reference, year_label, find_fiscal_year

FY_2025 = {'fiscal_year_from': date(2025, 1, 1), 'fiscal_year_to': date(2025, 12, 31)}
FY_SPLIT = {'fiscal_year_from': '2025-04-01', 'fiscal_year_to': '2026-03-31'}


def test_year_labels():
    assert year_label(FY_2025) == '2025'
    assert year_label(FY_SPLIT) == '2025/2026'


def test_first_reference_of_a_year():
    assert next_reference(10, FY_2025, []) == '001/2025'


def test_next_reference_only_counts_same_type_and_year():
    docs = [
        {'trans_type': 10, 'reference': '001/2025'},
        {'trans_type': 10, 'reference': '002/2025'},
        {'trans_type': 11, 'reference': '007/2025'},
        {'trans_type': 10, 'reference': '009/2024'},
        {'trans_type': 10, 'reference': 'auto'},
    ]
    assert next_reference(10, FY_2025, docs) == '003/2025'
    assert next_reference(11, FY_2025, docs) == '008/2025'
    assert next_reference(13, FY_2025, docs) == '001/2025'


def test_split_year_references():
    docs = [{'trans_type': 30, 'reference': '004/2025/2026'}, {'trans_type': 30, 'reference': '010/2025'}]
    assert next_reference(30, FY_SPLIT, docs) == '005/2025/2026'


def test_gaps_are_not_filled():
    docs = [{'trans_type': 10, 'reference': '001/2025'}, {'trans_type': 10, 'reference': '005/2025'}]
    assert next_reference(10, FY_2025, docs) == '006/2025'


def test_find_fiscal_year():
    years = [FY_2025, FY_SPLIT]
    assert find_fiscal_year(years, date(2025, 2, 1)) is FY_2025
    assert find_fiscal_year(years, '2026-02-01') is FY_SPLIT
    assert find_fiscal_year(years, date(2027, 1, 1)) is None


def test_numbering_continues_past_999():
    docs = [{'trans_type': 10, 'reference': '999/2025'}]
    assert next_reference(10, FY_2025, docs) == '1000/2025'
    docs.append({'trans_type': 10, 'reference': '1000/2025'})
    assert next_reference(10, FY_2025, docs) == '1001/2025'
