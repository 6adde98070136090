import re
from functools import lru_cache
from typing import Iterable, List

from .types import LoreEntry, LorebookSettings, SelectiveLogic


@lru_cache(maxsize=1024)
def _whole_word_pattern(key: str, case_sensitive: bool) -> re.Pattern:
    # bounded by a non-word character or the buffer edge on both sides
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(rf'(?<!\w){re.escape(key)}(?!\w)', flags)


def key_matches(buffer: str, key: str, case_sensitive: bool = False, match_whole_words: bool = False) -> bool:
    """
    Checks whether a single key occurs in the buffer. Blank keys never match.
    """
    if not key or not key.strip():
        return False

    if match_whole_words:
        return _whole_word_pattern(key, case_sensitive).search(buffer) is not None

    if case_sensitive:
        return key in buffer
    return key.lower() in buffer.lower()


def find_matching_keys(buffer: str, keys: Iterable[str], case_sensitive: bool = False,
                       match_whole_words: bool = False) -> List[str]:
    return [key for key in keys if key_matches(buffer, key, case_sensitive, match_whole_words)]


def _entry_flags(entry: LoreEntry, settings: LorebookSettings):
    case_sensitive = entry.case_sensitive if entry.case_sensitive is not None else settings.case_sensitive
    match_whole_words = entry.match_whole_words if entry.match_whole_words is not None else settings.match_whole_words
    return case_sensitive, match_whole_words


def count_key_matches(buffer: str, entry: LoreEntry, settings: LorebookSettings) -> int:
    """Number of distinct primary keys of the entry found in the buffer."""
    case_sensitive, match_whole_words = _entry_flags(entry, settings)
    return len(set(find_matching_keys(buffer, entry.usable_keys, case_sensitive, match_whole_words)))


def _secondary_gate(logic: SelectiveLogic, matched: int, total: int) -> bool:
    if logic == SelectiveLogic.AND_ANY:
        return matched > 0
    if logic == SelectiveLogic.AND_ALL:
        return matched == total
    if logic == SelectiveLogic.NOT_ANY:
        return matched == 0
    if logic == SelectiveLogic.NOT_ALL:
        return matched < total
    return True


def entry_matches(buffer: str, entry: LoreEntry, settings: LorebookSettings) -> bool:
    """
    True when any primary key of the entry occurs in the buffer. Selective
    entries with secondary keys must also pass their selective logic.
    """
    case_sensitive, match_whole_words = _entry_flags(entry, settings)
    if not find_matching_keys(buffer, entry.usable_keys, case_sensitive, match_whole_words):
        return False

    secondary = [key for key in entry.secondary_keys if key and key.strip()]
    if not entry.selective or not secondary:
        return True

    matched = len(find_matching_keys(buffer, secondary, case_sensitive, match_whole_words))
    return _secondary_gate(SelectiveLogic(entry.selective_logic), matched, len(secondary))
