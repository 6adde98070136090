from typing import Callable, Iterable, List

from lorekeeper.context import context
from lorekeeper.utils.tokenizers import estimate_tokens
from lorekeeper.utils.utils import create_logger
from .types import ComposedContext, InsertionStrategy, LoreEntry, LorebookSettings

composer_log = create_logger(__name__, entity_name='LORE_COMPOSER', level=context.log_level)


def order_entries(entries: Iterable[LoreEntry], strategy: InsertionStrategy) -> List[LoreEntry]:
    """
    Orders entries for insertion. Both orderings are stable with respect to
    the incoming activation order.
    """
    indexed = list(enumerate(entries))
    if InsertionStrategy(strategy) == InsertionStrategy.INSERTION_ORDER:
        indexed.sort(key=lambda item: (item[1].insertion_order, item[0]))
    else:
        indexed.sort(key=lambda item: (item[1].priority, item[1].insertion_order, item[0]))
    return [entry for _, entry in indexed]


def compose_context(activated_entries: Iterable[LoreEntry],
                    settings: LorebookSettings,
                    size_fn: Callable[[str], int] = estimate_tokens,
                    separator: str = '\n') -> ComposedContext:
    """
    Concatenates whole entry contents in insertion order until the next entry
    would push the joined text over the budget; that entry and every later
    one are dropped.
    """
    settings.validate()
    budget = settings.effective_budget
    ordered = order_entries(activated_entries, settings.insertion_strategy)

    included: List[LoreEntry] = []
    text = ''
    size = 0
    for position, entry in enumerate(ordered):
        candidate = separator.join([item.content for item in included] + [entry.content])
        candidate_size = size_fn(candidate)
        if candidate_size > budget:
            dropped = [item.id for item in ordered[position:]]
            composer_log.debug(f"Budget {budget} reached at entry '{entry.id}', dropped {dropped}")
            return ComposedContext(text=text, included_ids=[item.id for item in included],
                                   size=size, dropped_ids=dropped)
        included.append(entry)
        text = candidate
        size = candidate_size

    return ComposedContext(text=text, included_ids=[item.id for item in included], size=size)
