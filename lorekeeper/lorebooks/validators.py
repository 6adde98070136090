from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from lorekeeper.constants import LorebookFormat
from .formats import detect_lorebook_format

ENTRY_BOOLEAN_FIELDS = (
    'constant', 'selective', 'vectorized', 'disable',
    'excludeRecursion', 'preventRecursion', 'addMemo',
    'useProbability', 'groupOverride',
)
ENTRY_NUMBER_FIELDS = (
    'order', 'position', 'probability', 'depth',
    'groupWeight', 'displayIndex', 'selectiveLogic', 'role',
)
GLOBAL_NUMBER_SETTINGS = (
    'scan_depth', 'token_budget', 'recursion_depth',
    'recursion_steps', 'min_activations', 'max_depth', 'budget_cap',
)
GLOBAL_BOOLEAN_SETTINGS = (
    'recursive', 'include_names', 'case_sensitive',
    'match_whole_words', 'use_group_scoring',
)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    format: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'errors': self.errors,
            'warnings': self.warnings,
            'format': self.format,
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_sillytavern_entry(entry: Any, index: Any) -> List[str]:
    if not isinstance(entry, dict):
        return [f"Entry {index}: must be an object"]

    errors = []
    if not isinstance(entry.get('key'), (list, str)):
        errors.append(f"Entry {index}: 'key' must be an array or string")

    content = entry.get('content')
    if content is not None and not isinstance(content, str):
        errors.append(f"Entry {index}: 'content' must be a string")

    for name in ENTRY_BOOLEAN_FIELDS:
        if name in entry and entry[name] is not None and not isinstance(entry[name], bool):
            errors.append(f"Entry {index}: '{name}' must be a boolean")

    for name in ENTRY_NUMBER_FIELDS:
        if name in entry and entry[name] is not None and not _is_number(entry[name]):
            errors.append(f"Entry {index}: '{name}' must be a number")

    return errors


def _validate_sillytavern(data: Dict[str, Any]) -> ValidationResult:
    entries = data.get('entries')
    if not isinstance(entries, dict):
        return ValidationResult(False, ['Lorebook must contain an "entries" object'], [], LorebookFormat.SILLYTAVERN)

    errors = []
    warnings = []
    for key, entry in entries.items():
        errors.extend(_validate_sillytavern_entry(entry, key))

    if not entries:
        warnings.append('Lorebook contains no entries')

    for name in GLOBAL_NUMBER_SETTINGS:
        if name in data and not _is_number(data[name]):
            warnings.append(f"Global setting '{name}' should be a number")

    for name in GLOBAL_BOOLEAN_SETTINGS:
        if name in data and not isinstance(data[name], bool):
            warnings.append(f"Global setting '{name}' should be a boolean")

    return ValidationResult(not errors, errors, warnings, LorebookFormat.SILLYTAVERN)


def _validate_novelai(data: Dict[str, Any]) -> ValidationResult:
    errors = []
    warnings = []
    if not _is_number(data.get('lorebookVersion')):
        warnings.append('NovelAI lorebook should have a "lorebookVersion" number')

    for index, entry in enumerate(data['entries']):
        if not isinstance(entry, dict):
            errors.append(f"Entry {index}: must be an object")
            continue
        if not entry.get('text') or not isinstance(entry['text'], str):
            errors.append(f'Entry {index}: NovelAI entry must have a "text" field')
        if not isinstance(entry.get('keys'), list):
            errors.append(f'Entry {index}: NovelAI entry must have a "keys" array')
        if not isinstance(entry.get('enabled'), bool):
            warnings.append(f'Entry {index}: NovelAI entry should have an "enabled" boolean')

    return ValidationResult(not errors, errors, warnings, LorebookFormat.NOVELAI)


def _validate_agnai(data: Dict[str, Any]) -> ValidationResult:
    errors = []
    warnings = []
    for index, entry in enumerate(data['entries']):
        if not isinstance(entry, dict):
            errors.append(f"Entry {index}: must be an object")
            continue
        if not entry.get('entry') or not isinstance(entry['entry'], str):
            errors.append(f'Entry {index}: Agnai entry must have an "entry" field')
        if not isinstance(entry.get('keywords'), list):
            errors.append(f'Entry {index}: Agnai entry must have a "keywords" array')
        if not isinstance(entry.get('enabled'), bool):
            warnings.append(f'Entry {index}: Agnai entry should have an "enabled" boolean')

    return ValidationResult(not errors, errors, warnings, LorebookFormat.AGNAI)


def _validate_risu(data: Dict[str, Any]) -> ValidationResult:
    errors = []
    warnings = []
    for index, entry in enumerate(data['data']):
        if not isinstance(entry, dict):
            errors.append(f"Entry {index}: must be an object")
            continue
        if not entry.get('key') or not isinstance(entry['key'], str):
            errors.append(f'Entry {index}: Risu entry must have a "key" string')
        if not entry.get('content') or not isinstance(entry['content'], str):
            errors.append(f'Entry {index}: Risu entry must have a "content" string')
        if not isinstance(entry.get('alwaysActive'), bool):
            warnings.append(f'Entry {index}: Risu entry should have an "alwaysActive" boolean')
        if not _is_number(entry.get('insertorder')):
            warnings.append(f'Entry {index}: Risu entry should have an "insertorder" number')

    return ValidationResult(not errors, errors, warnings, LorebookFormat.RISU)


def _validate_character_book(data: Dict[str, Any]) -> ValidationResult:
    errors = []
    warnings = []
    if not data['entries']:
        warnings.append('Lorebook contains no entries')

    for index, entry in enumerate(data['entries']):
        if not isinstance(entry, dict):
            errors.append(f"Entry {index}: must be an object")
            continue
        if not isinstance(entry.get('keys'), list):
            errors.append(f'Entry {index}: character book entry must have a "keys" array')
        if not isinstance(entry.get('content'), str):
            errors.append(f'Entry {index}: character book entry must have a "content" string')
        if 'enabled' in entry and not isinstance(entry['enabled'], bool):
            warnings.append(f'Entry {index}: character book entry should have an "enabled" boolean')

    return ValidationResult(not errors, errors, warnings, LorebookFormat.CHARACTER_BOOK)


def validate_lorebook(data: Any) -> ValidationResult:
    """
    Structural validation of raw lorebook data in any supported format.
    Unrecognized objects are checked as SillyTavern world info.
    """
    if not isinstance(data, dict):
        return ValidationResult(False, ['Invalid lorebook data: must be an object'], [])

    lorebook_format = detect_lorebook_format(data)
    if lorebook_format == LorebookFormat.NOVELAI:
        return _validate_novelai(data)
    if lorebook_format == LorebookFormat.AGNAI:
        return _validate_agnai(data)
    if lorebook_format == LorebookFormat.RISU:
        return _validate_risu(data)
    if lorebook_format == LorebookFormat.CHARACTER_BOOK:
        return _validate_character_book(data)
    return _validate_sillytavern(data)


def is_valid_lorebook_for_import(data: Any) -> bool:
    return validate_lorebook(data).is_valid


def get_validation_summary(validation: ValidationResult) -> str:
    if validation.is_valid:
        if validation.warnings:
            return f"Valid {validation.format} lorebook with {len(validation.warnings)} warnings"
        return f"Valid {validation.format} lorebook"

    first_error = validation.errors[0] if validation.errors else 'Unknown error'
    return f"Invalid lorebook: {first_error}"
