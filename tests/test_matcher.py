import pytest
from lorekeeper.engine import LoreEntry, LorebookSettings, SelectiveLogic, count_key_matches, entry_matches, key_matches


def make_entry(**kwargs):
    params = {'id': 'e1', 'keys': ['dragon'], 'content': 'Dragons are ancient.'}
    params.update(kwargs)
    return LoreEntry(**params)


def test_substring_match_is_case_insensitive_by_default():
    assert key_matches('A DRAGON appeared', 'dragon')
    assert not key_matches('A DRAGON appeared', 'dragon', case_sensitive=True)
    assert key_matches('A dragon appeared', 'dragon', case_sensitive=True)


def test_whole_word_boundaries():
    assert not key_matches('concatenate', 'cat', match_whole_words=True)
    assert key_matches('the cat sat', 'cat', match_whole_words=True)
    assert key_matches('cat.', 'cat', match_whole_words=True)
    assert key_matches('concatenate', 'cat')


def test_keys_are_literal_text():
    assert key_matches('price is $5 (approx)', '$5 (approx)', match_whole_words=True)
    assert not key_matches('aXb', 'a.b')


def test_blank_keys_never_match():
    assert not key_matches('anything', '')
    assert not key_matches('anything', '   ')
    entry = make_entry(keys=['', ' '])
    assert not entry_matches('anything', entry, LorebookSettings())


def test_entry_flags_override_lorebook_defaults():
    settings = LorebookSettings(case_sensitive=True, match_whole_words=True)
    assert not entry_matches('Dragons', make_entry(), settings)
    assert entry_matches('dragons', make_entry(match_whole_words=False), settings)
    assert entry_matches('DRAGON', make_entry(case_sensitive=False), settings)


@pytest.mark.parametrize('logic,buffer,expected', [
    (SelectiveLogic.AND_ANY, 'dragon in the cave', True),
    (SelectiveLogic.AND_ANY, 'dragon in the sky', False),
    (SelectiveLogic.AND_ALL, 'dragon in the cave with gold', True),
    (SelectiveLogic.AND_ALL, 'dragon in the cave', False),
    (SelectiveLogic.NOT_ANY, 'dragon in the sky', True),
    (SelectiveLogic.NOT_ANY, 'dragon in the cave', False),
    (SelectiveLogic.NOT_ALL, 'dragon in the cave', True),
    (SelectiveLogic.NOT_ALL, 'dragon in the cave with gold', False),
])
def test_selective_logic(logic, buffer, expected):
    entry = make_entry(selective=True, secondary_keys=['cave', 'gold'], selective_logic=logic)
    assert entry_matches(buffer, entry, LorebookSettings()) is expected


def test_secondary_keys_ignored_unless_selective():
    entry = make_entry(selective=False, secondary_keys=['cave'], selective_logic=SelectiveLogic.AND_ALL)
    assert entry_matches('a dragon', entry, LorebookSettings())


def test_count_key_matches_counts_distinct_keys():
    entry = make_entry(keys=['dragon', 'wyrm', 'drake'])
    assert count_key_matches('dragon dragon wyrm', entry, LorebookSettings()) == 2
