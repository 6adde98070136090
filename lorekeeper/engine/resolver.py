from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from lorekeeper.context import context
from lorekeeper.utils.utils import create_logger
from .matcher import count_key_matches, entry_matches
from .types import (ActivationRecord, ActivationResult, LoreEntry, LorebookSettings,
                    LorebookSettingsError)

resolver_log = create_logger(__name__, entity_name='LORE_RESOLVER', level=context.log_level)

Candidate = Tuple[LoreEntry, int]


def _malformed_reason(entry) -> Optional[str]:
    if not isinstance(entry, LoreEntry):
        return f"unexpected type {type(entry).__name__}"
    if entry.id is None or str(entry.id) == '':
        return "missing id"
    if not isinstance(entry.keys, (list, tuple)):
        return "keys must be a list"
    if not isinstance(entry.content, str) or not entry.content.strip():
        return "missing content"
    if not entry.constant and not entry.usable_keys:
        return "no keys"
    for name in ('sticky', 'cooldown', 'delay'):
        value = getattr(entry, name)
        if value is not None and value < 0:
            return f"negative {name}"
    return None


def _usable_pool(entries: Iterable[LoreEntry]) -> Tuple[List[LoreEntry], List[str]]:
    """Drops malformed and duplicate entries, keeping pool order."""
    pool = []
    skipped = []
    seen: Set[str] = set()
    for entry in entries:
        reason = _malformed_reason(entry)
        if reason is None and entry.id in seen:
            reason = "duplicate id"
        if reason is not None:
            entry_id = getattr(entry, 'id', None)
            resolver_log.warning(f"Skipping lore entry '{entry_id}': {reason}")
            skipped.append(str(entry_id))
            continue
        seen.add(entry.id)
        pool.append(entry)
    return pool, skipped


def _uses_group_scoring(entry: LoreEntry, settings: LorebookSettings) -> bool:
    if not entry.group_id:
        return False
    if entry.use_group_scoring is not None:
        return entry.use_group_scoring
    return settings.use_group_scoring


def _group_rank(entry: LoreEntry, match_count: int, index: int):
    # lowest priority number wins, then group weight, then key matches, then pool order
    return (entry.priority, -entry.group_weight, -match_count, index)


def _apply_group_exclusivity(candidates: Sequence[Candidate], settings: LorebookSettings,
                             groups_taken: Set[str]) -> List[LoreEntry]:
    survivors = []
    best: Dict[str, Tuple[LoreEntry, int, int]] = {}
    for index, (entry, match_count) in enumerate(candidates):
        if not _uses_group_scoring(entry, settings):
            survivors.append((index, entry))
            continue
        if entry.group_id in groups_taken:
            resolver_log.debug(f"Entry '{entry.id}' discarded, group '{entry.group_id}' already active")
            continue
        current = best.get(entry.group_id)
        if current is None or _group_rank(entry, match_count, index) < _group_rank(*current):
            best[entry.group_id] = (entry, match_count, index)

    for group_id, (entry, _, index) in best.items():
        survivors.append((index, entry))
        groups_taken.add(group_id)

    survivors.sort(key=lambda item: item[0])
    return [entry for _, entry in survivors]


def _cap_activations(activated: List[LoreEntry], max_depth: int) -> Tuple[List[LoreEntry], List[str]]:
    if max_depth == 0 or len(activated) <= max_depth:
        return activated, []

    ranked = sorted(range(len(activated)),
                    key=lambda i: (activated[i].priority, activated[i].insertion_order, i))
    keep = set(ranked[:max_depth])
    kept = [entry for i, entry in enumerate(activated) if i in keep]
    dropped = [entry.id for i, entry in enumerate(activated) if i not in keep]
    return kept, dropped


def _next_records(pool: List[LoreEntry], records: Dict[str, ActivationRecord], active_ids: Set[str],
                  triggered: Set[str], turn: int) -> List[ActivationRecord]:
    next_records = []
    for entry in pool:
        prior = records.get(entry.id)
        remaining_delay = max(0, (entry.delay or 0) - (turn + 1))

        if entry.id in active_ids:
            if entry.id in triggered or prior is None:
                sticky = entry.sticky or 0
                activated_at = turn
            else:
                sticky = max(0, prior.sticky - 1)
                activated_at = prior.activated_at_turn
            next_records.append(ActivationRecord(entry_id=entry.id, activated_at_turn=activated_at,
                                                 sticky=sticky, cooldown=0, delay=remaining_delay,
                                                 active=True))
            continue

        if prior is None:
            continue

        if prior.active and entry.cooldown:
            cooldown = entry.cooldown
        else:
            cooldown = max(0, prior.cooldown - 1)

        if cooldown > 0:
            next_records.append(ActivationRecord(entry_id=entry.id, activated_at_turn=prior.activated_at_turn,
                                                 sticky=0, cooldown=cooldown, delay=remaining_delay,
                                                 active=False))
    return next_records


def resolve_activations(entries: Iterable[LoreEntry],
                        settings: LorebookSettings,
                        buffer: str,
                        prior_records: Iterable[ActivationRecord] = (),
                        turn: int = 0,
                        should_abort: Optional[Callable[[], bool]] = None) -> ActivationResult:
    """
    Decides which lore entries are active for the current turn.

    The conversation buffer is scanned first; when recursion is enabled the
    content of each pass's new activations is scanned in the next pass, until
    a pass adds nothing or the recursion bound is reached. An entry activates
    at most once per turn, so cyclic references terminate.

    prior_records carry sticky/cooldown state from the previous turn; the
    returned next_records replace them. turn is the zero-based turn number
    used for delays. should_abort is polled between recursive passes.
    """
    settings.validate()
    if turn < 0:
        raise LorebookSettingsError(f"Turn must not be negative, got {turn}")

    pool, skipped = _usable_pool(entries)
    pool_ids = {entry.id for entry in pool}
    records = {}
    for record in prior_records:
        if record.entry_id in pool_ids:
            records[record.entry_id] = record
        else:
            resolver_log.debug(f"Dropping activation record for unknown entry '{record.entry_id}'")

    def is_eligible(entry: LoreEntry) -> bool:
        if not entry.enabled:
            return False
        record = records.get(entry.id)
        if record is not None and record.cooldown > 0:
            return False
        if entry.delay and turn < entry.delay:
            return False
        return True

    eligible = [entry for entry in pool if is_eligible(entry)]
    activated: Dict[str, LoreEntry] = {}
    triggered: Set[str] = set()
    groups_taken: Set[str] = set()

    candidates: List[Candidate] = []
    for entry in eligible:
        record = records.get(entry.id)
        if entry.constant:
            candidates.append((entry, 0))
            triggered.add(entry.id)
        elif entry_matches(buffer, entry, settings):
            candidates.append((entry, count_key_matches(buffer, entry, settings)))
            triggered.add(entry.id)
        elif record is not None and record.sticky > 0:
            candidates.append((entry, 0))

    new_entries = _apply_group_exclusivity(candidates, settings, groups_taken)
    for entry in new_entries:
        activated[entry.id] = entry

    passes = 1
    depth = 0
    bound = settings.recursion_bound
    aborted = False
    while new_entries and depth < bound:
        if should_abort is not None and should_abort():
            resolver_log.info(f"Activation aborted after {passes} pass(es)")
            aborted = True
            break

        scan_text = '\n'.join(entry.content for entry in new_entries if not entry.prevent_recursion)
        depth += 1
        if not scan_text:
            break

        candidates = [
            (entry, count_key_matches(scan_text, entry, settings))
            for entry in eligible
            if entry.id not in activated
            and not entry.exclude_recursion
            and not entry.constant
            and entry_matches(scan_text, entry, settings)
        ]
        new_entries = _apply_group_exclusivity(candidates, settings, groups_taken)
        for entry in new_entries:
            activated[entry.id] = entry
            triggered.add(entry.id)
        passes += 1

    ordered, dropped = _cap_activations(list(activated.values()), settings.max_depth)
    if dropped:
        resolver_log.info(f"Dropped {len(dropped)} activation(s) over max_depth={settings.max_depth}")

    active_ids = {entry.id for entry in ordered}
    next_records = _next_records(pool, records, active_ids, triggered, turn)

    min_met = len(ordered) >= settings.min_activations
    if not min_met:
        resolver_log.debug(f"Only {len(ordered)} activation(s), below min_activations={settings.min_activations}")

    resolver_log.debug(f"Turn {turn}: activated {[entry.id for entry in ordered]} in {passes} pass(es)")
    return ActivationResult(
        activated_ids=[entry.id for entry in ordered],
        next_records=next_records,
        activated_entries=ordered,
        dropped_ids=dropped,
        skipped_ids=skipped,
        passes=passes,
        min_activations_met=min_met,
        aborted=aborted,
    )
