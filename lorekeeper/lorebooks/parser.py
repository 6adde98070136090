import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from lorekeeper.constants import (DEFAULT_ENTRY_ORDER, DEFAULT_ENTRY_DEPTH, DEFAULT_GROUP_WEIGHT,
                                  LorebookFormat, UNNAMED_LOREBOOK)
from lorekeeper.context import context
from lorekeeper.dto.lorebook_dto import LoreEntryDTO, LorebookSettingsDTO, ParsedLorebook
from lorekeeper.engine.types import InsertionStrategy
from lorekeeper.utils.utils import create_logger
from .formats import detect_lorebook_format

parser_log = create_logger(__name__, entity_name='LOREBOOK_PARSER', level=context.log_level)

FILE_EXTENSION_RE = re.compile(r'\.(json|jsonl|txt|png)$', re.IGNORECASE)
CHARACTER_BOOK_POSITIONS = {'before_char': 0, 'after_char': 1}

# SillyTavern global setting -> LorebookSettingsDTO field
SILLYTAVERN_SETTINGS = {
    'recursive': 'recursive',
    'scan_depth': 'scan_depth',
    'token_budget': 'token_budget',
    'recursion_depth': 'recursion_depth',
    'recursion_steps': 'recursion_steps',
    'min_activations': 'min_activations',
    'max_depth': 'max_depth',
    'include_names': 'include_names',
    'case_sensitive': 'case_sensitive',
    'match_whole_words': 'match_whole_words',
    'use_group_scoring': 'use_group_scoring',
    'budget_cap': 'budget_cap',
}


class LorebookParseError(Exception):
    """Raised when lorebook data cannot be turned into entries."""
    pass


def _int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _bool(value: Any, default: Optional[bool] = None) -> Optional[bool]:
    return value if isinstance(value, bool) else default


def _precedence(order: Any, default: int = DEFAULT_ENTRY_ORDER) -> int:
    # source formats rank higher order first, the engine ranks lower priority first
    return -_int(order, default)


def normalize_lorebook_name(file_name: str) -> str:
    name = FILE_EXTENSION_RE.sub('', file_name or '').strip()
    return name or UNNAMED_LOREBOOK


def _build_entries(raw_entries: List[Dict[str, Any]]) -> List[LoreEntryDTO]:
    entries = []
    for raw in raw_entries:
        try:
            entries.append(LoreEntryDTO(**raw))
        except ValidationError as e:
            parser_log.warning(f"Skipping lorebook entry {raw.get('id')!r}: {e.error_count()} validation error(s)")
    return entries


def _insertion_strategy(value: Any) -> InsertionStrategy:
    # SillyTavern strategies (evenly, character_first, global_first) order by priority here
    try:
        return InsertionStrategy(value)
    except ValueError:
        return InsertionStrategy.PRIORITY


def _sillytavern_settings(data: Dict[str, Any]) -> LorebookSettingsDTO:
    values: Dict[str, Any] = {}
    for source, target in SILLYTAVERN_SETTINGS.items():
        value = data.get(source)
        default = LorebookSettingsDTO.model_fields[target].default
        if isinstance(default, bool):
            values[target] = _bool(value, default)
        else:
            number = _int(value, default)
            values[target] = number if number >= 0 else default
    values['insertion_strategy'] = _insertion_strategy(data.get('insertion_strategy'))
    return LorebookSettingsDTO(**values)


def _sillytavern_entry(key: str, entry: Dict[str, Any], index: int) -> Dict[str, Any]:
    return {
        'id': entry.get('uid', key),
        'keys': entry.get('key'),
        'secondary_keys': entry.get('keysecondary'),
        'content': entry.get('content'),
        'comment': entry.get('comment'),
        'enabled': not entry.get('disable', False),
        'constant': bool(entry.get('constant', False)),
        'selective': bool(entry.get('selective', True)),
        'selective_logic': _int(entry.get('selectiveLogic'), 0),
        'priority': _precedence(entry.get('order')),
        'insertion_order': _int(entry.get('displayIndex'), index),
        'position': _int(entry.get('position'), 0),
        'depth': _int(entry.get('depth'), DEFAULT_ENTRY_DEPTH),
        'case_sensitive': _bool(entry.get('caseSensitive')),
        'match_whole_words': _bool(entry.get('matchWholeWords')),
        'use_group_scoring': _bool(entry.get('useGroupScoring')),
        'group_id': entry.get('group'),
        'group_weight': _int(entry.get('groupWeight'), DEFAULT_GROUP_WEIGHT),
        'sticky': _int(entry.get('sticky')),
        'cooldown': _int(entry.get('cooldown')),
        'delay': _int(entry.get('delay')),
        'exclude_recursion': bool(entry.get('excludeRecursion', False)),
        'prevent_recursion': bool(entry.get('preventRecursion', False)),
    }


def _parse_sillytavern(data: Dict[str, Any], name: str) -> ParsedLorebook:
    raw_entries = [
        _sillytavern_entry(key, entry, index)
        for index, (key, entry) in enumerate(data['entries'].items())
        if isinstance(entry, dict)
    ]
    return ParsedLorebook(
        name=name,
        entries=_build_entries(raw_entries),
        settings=_sillytavern_settings(data),
        format=LorebookFormat.SILLYTAVERN,
        original_data=data,
    )


def _character_book_entry(entry: Dict[str, Any], index: int) -> Dict[str, Any]:
    extensions = entry.get('extensions') or {}
    position = entry.get('position')
    return {
        'id': entry.get('id', index),
        'keys': entry.get('keys'),
        'secondary_keys': entry.get('secondary_keys'),
        'content': entry.get('content'),
        'comment': entry.get('comment') or entry.get('name'),
        'enabled': entry.get('enabled', True) is not False,
        'constant': bool(entry.get('constant', False)),
        'selective': bool(entry.get('selective', False)),
        'selective_logic': _int(extensions.get('selectiveLogic'), 0),
        'priority': _precedence(entry.get('insertion_order')),
        'insertion_order': _int(extensions.get('display_index'), index),
        'position': _int(extensions.get('position'), CHARACTER_BOOK_POSITIONS.get(position, 0)),
        'depth': _int(extensions.get('depth'), DEFAULT_ENTRY_DEPTH),
        'case_sensitive': _bool(entry.get('case_sensitive'), _bool(extensions.get('case_sensitive'))),
        'match_whole_words': _bool(extensions.get('match_whole_words')),
        'use_group_scoring': _bool(extensions.get('use_group_scoring')),
        'group_id': extensions.get('group'),
        'group_weight': _int(extensions.get('group_weight'), DEFAULT_GROUP_WEIGHT),
        'sticky': _int(extensions.get('sticky')),
        'cooldown': _int(extensions.get('cooldown')),
        'delay': _int(extensions.get('delay')),
        'exclude_recursion': bool(extensions.get('exclude_recursion', False)),
        'prevent_recursion': bool(extensions.get('prevent_recursion', False)),
    }


def _parse_character_book(data: Dict[str, Any], name: str) -> ParsedLorebook:
    raw_entries = [
        _character_book_entry(entry, index)
        for index, entry in enumerate(data['entries'])
        if isinstance(entry, dict)
    ]
    defaults = LorebookSettingsDTO()
    settings = LorebookSettingsDTO(
        recursive=_bool(data.get('recursive_scanning'), defaults.recursive),
        scan_depth=max(0, _int(data.get('scan_depth'), defaults.scan_depth)),
        token_budget=max(0, _int(data.get('token_budget'), defaults.token_budget)),
    )
    return ParsedLorebook(
        name=data.get('name') or name,
        description=data.get('description') or '',
        entries=_build_entries(raw_entries),
        settings=settings,
        format=LorebookFormat.CHARACTER_BOOK,
        original_data=data,
    )


def _parse_novelai(data: Dict[str, Any], name: str) -> ParsedLorebook:
    raw_entries = []
    for index, entry in enumerate(data['entries']):
        if not isinstance(entry, dict):
            continue
        context_config = entry.get('contextConfig') or {}
        raw_entries.append({
            'id': index,
            'keys': entry.get('keys'),
            'content': entry.get('text'),
            'comment': entry.get('displayName'),
            'enabled': entry.get('enabled', True) is not False,
            'constant': bool(entry.get('forceActivation', False)),
            'priority': _precedence(context_config.get('budgetPriority')),
            'insertion_order': index,
        })
    return ParsedLorebook(
        name=name,
        entries=_build_entries(raw_entries),
        format=LorebookFormat.NOVELAI,
        version=str(data['lorebookVersion']) if data.get('lorebookVersion') is not None else None,
        original_data=data,
    )


def _parse_agnai(data: Dict[str, Any], name: str) -> ParsedLorebook:
    raw_entries = []
    for index, entry in enumerate(data['entries']):
        if not isinstance(entry, dict):
            continue
        priority = _precedence(entry.get('weight'), _int(entry.get('priority'), DEFAULT_ENTRY_ORDER))
        raw_entries.append({
            'id': index,
            'keys': entry.get('keywords'),
            'content': entry.get('entry'),
            'comment': entry.get('name'),
            'enabled': entry.get('enabled', True) is not False,
            'priority': priority,
            'insertion_order': index,
        })
    return ParsedLorebook(
        name=data.get('name') or name,
        description=data.get('description') or '',
        entries=_build_entries(raw_entries),
        format=LorebookFormat.AGNAI,
        original_data=data,
    )


def _parse_risu(data: Dict[str, Any], name: str) -> ParsedLorebook:
    raw_entries = []
    for index, entry in enumerate(data['data']):
        if not isinstance(entry, dict):
            continue
        raw_entries.append({
            'id': index,
            'keys': entry.get('key'),
            'secondary_keys': entry.get('secondkey'),
            'content': entry.get('content'),
            'comment': entry.get('comment'),
            'constant': bool(entry.get('alwaysActive', False)),
            'selective': bool(entry.get('selective', False)),
            'priority': _precedence(entry.get('insertorder')),
            'insertion_order': index,
        })
    return ParsedLorebook(
        name=name,
        entries=_build_entries(raw_entries),
        format=LorebookFormat.RISU,
        original_data=data,
    )


_PARSERS = {
    LorebookFormat.SILLYTAVERN: _parse_sillytavern,
    LorebookFormat.CHARACTER_BOOK: _parse_character_book,
    LorebookFormat.NOVELAI: _parse_novelai,
    LorebookFormat.AGNAI: _parse_agnai,
    LorebookFormat.RISU: _parse_risu,
}


def parse_lorebook(data: Any, file_name: str) -> ParsedLorebook:
    """
    Normalizes raw lorebook data of any supported format into entry and
    settings DTOs. Entries that fail validation are skipped with a warning.
    """
    lorebook_format = detect_lorebook_format(data)
    parse = _PARSERS.get(lorebook_format)
    if parse is None:
        raise LorebookParseError("Unrecognized lorebook format")

    parsed = parse(data, normalize_lorebook_name(file_name))
    if not parsed.description:
        parsed.description = f"Imported lorebook with {len(parsed.entries)} entries"

    parser_log.info(f"Parsed {lorebook_format} lorebook '{parsed.name}' with {len(parsed.entries)} entries")
    return parsed
