# This file marks the dto directory as a Python package.

from .chat_dto import ChatDTO, ChatCreateDTO, MessageDTO, MessageCreateDTO

from .lorebook_dto import (
    LoreEntryDTO, LorebookSettingsDTO, ChatLorebookOverridesDTO, ActivationRecordDTO,
    ParsedLorebook, LorebookImportDTO, LorebookBasicDTO, LorebookDTO, ActiveLorebookDTO,
    LorebookStatsDTO, ActivatedEntryDTO, ScanResultDTO
)

__all__ = [
    # Chat DTOs
    'ChatDTO', 'ChatCreateDTO', 'MessageDTO', 'MessageCreateDTO',
    # Lorebook DTOs
    'LoreEntryDTO', 'LorebookSettingsDTO', 'ChatLorebookOverridesDTO', 'ActivationRecordDTO',
    'ParsedLorebook', 'LorebookImportDTO', 'LorebookBasicDTO', 'LorebookDTO', 'ActiveLorebookDTO',
    'LorebookStatsDTO', 'ActivatedEntryDTO', 'ScanResultDTO'
]
