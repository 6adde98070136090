from typing import Any

from lorekeeper.constants import LorebookFormat


def detect_lorebook_format(data: Any) -> str:
    """
    Detects which tool exported the lorebook. A list of entries without a
    more specific marker is a character card book (Character Card V2/V3).
    """
    if not isinstance(data, dict):
        return LorebookFormat.UNKNOWN

    entries = data.get('entries')
    if 'lorebookVersion' in data and isinstance(entries, list):
        return LorebookFormat.NOVELAI
    if data.get('kind') == 'memory' and isinstance(entries, list):
        return LorebookFormat.AGNAI
    if data.get('type') == 'risu' and isinstance(data.get('data'), list):
        return LorebookFormat.RISU
    if isinstance(entries, list):
        return LorebookFormat.CHARACTER_BOOK
    if isinstance(entries, dict):
        return LorebookFormat.SILLYTAVERN
    return LorebookFormat.UNKNOWN
