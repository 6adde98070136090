from typing import Callable, Iterable, Optional, Tuple

from .types import (ActivationRecord, ActivationResult, ComposedContext, InsertionStrategy, LoreEntry,
                    LorebookSettings, LorebookSettingsError, SelectiveLogic)
from .matcher import count_key_matches, entry_matches, find_matching_keys, key_matches
from .resolver import resolve_activations
from .composer import compose_context, order_entries
from lorekeeper.utils.tokenizers import estimate_tokens

__all__ = [
    'ActivationRecord',
    'ActivationResult',
    'ComposedContext',
    'InsertionStrategy',
    'LoreEntry',
    'LorebookSettings',
    'LorebookSettingsError',
    'SelectiveLogic',
    'activate_and_compose',
    'compose_context',
    'count_key_matches',
    'entry_matches',
    'find_matching_keys',
    'key_matches',
    'order_entries',
    'resolve_activations',
]


def activate_and_compose(entries: Iterable[LoreEntry],
                         settings: LorebookSettings,
                         buffer: str,
                         prior_records: Iterable[ActivationRecord] = (),
                         turn: int = 0,
                         size_fn: Callable[[str], int] = estimate_tokens,
                         separator: str = '\n',
                         should_abort: Optional[Callable[[], bool]] = None) -> Tuple[ActivationResult, ComposedContext]:
    """Runs activation and composition for a single turn."""
    result = resolve_activations(entries, settings, buffer, prior_records, turn=turn, should_abort=should_abort)
    composed = compose_context(result.activated_entries, settings, size_fn=size_fn, separator=separator)
    return result, composed
