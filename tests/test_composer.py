import pytest
from lorekeeper.engine import InsertionStrategy, LoreEntry, LorebookSettings, compose_context, order_entries
from lorekeeper.utils.tokenizers import char_count, estimate_tokens, get_size_function, word_count


def entries():
    return [
        LoreEntry(id='late', keys=['x'], content='cccc', priority=3, insertion_order=0),
        LoreEntry(id='early', keys=['x'], content='aaaa', priority=1, insertion_order=2),
        LoreEntry(id='middle', keys=['x'], content='bbbb', priority=2, insertion_order=1),
    ]


def test_priority_order():
    composed = compose_context(entries(), LorebookSettings(token_budget=100), size_fn=char_count)
    assert composed.included_ids == ['early', 'middle', 'late']
    assert composed.text == 'aaaa\nbbbb\ncccc'
    assert composed.size == 14


def test_insertion_order_strategy():
    settings = LorebookSettings(token_budget=100, insertion_strategy=InsertionStrategy.INSERTION_ORDER)
    composed = compose_context(entries(), settings, size_fn=char_count)
    assert composed.included_ids == ['late', 'middle', 'early']


def test_ordering_is_stable_for_ties():
    tied = [LoreEntry(id=str(i), keys=['x'], content='t') for i in range(5)]
    assert [entry.id for entry in order_entries(tied, InsertionStrategy.PRIORITY)] == ['0', '1', '2', '3', '4']


def test_budget_stops_at_first_entry_that_does_not_fit():
    # 'aaaa\nbbbb' is 9 characters, adding '\ncccc' would make 14
    composed = compose_context(entries(), LorebookSettings(token_budget=10), size_fn=char_count)
    assert composed.included_ids == ['early', 'middle']
    assert composed.text == 'aaaa\nbbbb'
    assert composed.dropped_ids == ['late']


def test_later_smaller_entries_are_not_backfilled():
    items = [
        LoreEntry(id='big', keys=['x'], content='x' * 50, priority=1),
        LoreEntry(id='small', keys=['x'], content='y', priority=2),
    ]
    composed = compose_context(items, LorebookSettings(token_budget=10), size_fn=char_count)
    assert composed.included_ids == []
    assert composed.text == ''
    assert composed.dropped_ids == ['big', 'small']


def test_zero_budget_includes_nothing():
    composed = compose_context(entries(), LorebookSettings(token_budget=0))
    assert composed.included_ids == []
    assert composed.text == ''


def test_budget_cap_lowers_budget():
    settings = LorebookSettings(token_budget=100, budget_cap=4)
    composed = compose_context(entries(), settings, size_fn=char_count)
    assert composed.included_ids == ['early']


def test_custom_separator():
    composed = compose_context(entries(), LorebookSettings(token_budget=100), size_fn=char_count, separator=' | ')
    assert composed.text == 'aaaa | bbbb | cccc'


def test_invalid_settings_raise():
    with pytest.raises(ValueError):
        compose_context(entries(), LorebookSettings(token_budget=-1))


def test_size_functions():
    assert estimate_tokens('') == 0
    assert estimate_tokens('abcde') == 2
    assert char_count('abc') == 3
    assert word_count('one two  three') == 3
    assert get_size_function('words') is word_count
    assert get_size_function(None) is estimate_tokens
    assert get_size_function('no-such-function') is estimate_tokens
