from .formats import detect_lorebook_format
from .parser import LorebookParseError, normalize_lorebook_name, parse_lorebook
from .validators import ValidationResult, get_validation_summary, is_valid_lorebook_for_import, validate_lorebook

__all__ = [
    'LorebookParseError',
    'ValidationResult',
    'detect_lorebook_format',
    'get_validation_summary',
    'is_valid_lorebook_for_import',
    'normalize_lorebook_name',
    'parse_lorebook',
    'validate_lorebook',
]
