from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from lorekeeper.constants import (DEFAULT_ENTRY_PRIORITY, DEFAULT_ENTRY_DEPTH, DEFAULT_GROUP_WEIGHT,
                                  DEFAULT_SCAN_DEPTH, DEFAULT_TOKEN_BUDGET, DEFAULT_RECURSION_DEPTH,
                                  DEFAULT_MAX_DEPTH)
from lorekeeper.engine.types import (ActivationRecord, InsertionStrategy, LoreEntry, LorebookSettings,
                                     SelectiveLogic)

# --- Entry / Settings DTOs ---

class LoreEntryDTO(BaseModel):
    id: str
    keys: List[str] = Field(default_factory=list)
    content: str = ''
    enabled: bool = True
    priority: int = DEFAULT_ENTRY_PRIORITY
    insertion_order: int = 0
    case_sensitive: Optional[bool] = None
    match_whole_words: Optional[bool] = None
    sticky: Optional[int] = Field(None, ge=0)
    cooldown: Optional[int] = Field(None, ge=0)
    delay: Optional[int] = Field(None, ge=0)
    group_id: Optional[str] = None
    group_weight: int = DEFAULT_GROUP_WEIGHT
    use_group_scoring: Optional[bool] = None
    secondary_keys: List[str] = Field(default_factory=list)
    selective: bool = False
    selective_logic: SelectiveLogic = SelectiveLogic.AND_ANY
    constant: bool = False
    exclude_recursion: bool = False
    prevent_recursion: bool = False
    comment: str = ''
    position: int = 0
    depth: int = DEFAULT_ENTRY_DEPTH

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        if v is None or v == '':
            raise ValueError("Entry id must not be empty")
        return str(v)

    @field_validator('keys', 'secondary_keys', mode='before')
    @classmethod
    def split_keys(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(',')
        return [str(key).strip() for key in v if key is not None and str(key).strip()]

    @field_validator('group_id', mode='before')
    @classmethod
    def empty_group_is_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator('content', 'comment', mode='before')
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return '' if v is None else v

    def to_entry(self) -> LoreEntry:
        return LoreEntry(**self.model_dump())


class LorebookSettingsDTO(BaseModel):
    recursive: bool = False
    scan_depth: int = Field(DEFAULT_SCAN_DEPTH, ge=0)
    recursion_depth: int = Field(DEFAULT_RECURSION_DEPTH, ge=0)
    recursion_steps: int = Field(0, ge=0)
    token_budget: int = Field(DEFAULT_TOKEN_BUDGET, ge=0)
    budget_cap: int = Field(0, ge=0)
    min_activations: int = Field(0, ge=0)
    max_depth: int = Field(DEFAULT_MAX_DEPTH, ge=0)
    insertion_strategy: InsertionStrategy = InsertionStrategy.PRIORITY
    use_group_scoring: bool = False
    case_sensitive: bool = False
    match_whole_words: bool = False
    include_names: bool = True

    def to_settings(self) -> LorebookSettings:
        return LorebookSettings(**self.model_dump())


class ChatLorebookOverridesDTO(BaseModel):
    recursive: Optional[bool] = None
    scan_depth: Optional[int] = Field(None, ge=0)
    token_budget: Optional[int] = Field(None, ge=0)
    case_sensitive: Optional[bool] = None
    match_whole_words: Optional[bool] = None


class ActivationRecordDTO(BaseModel):
    entry_id: str
    activated_at_turn: int = Field(0, ge=0)
    sticky: int = Field(0, ge=0)
    cooldown: int = Field(0, ge=0)
    delay: int = Field(0, ge=0)
    active: bool = True

    @field_validator('entry_id', mode='before')
    @classmethod
    def coerce_entry_id(cls, v: Any) -> str:
        return str(v)

    def to_record(self) -> ActivationRecord:
        return ActivationRecord(**self.model_dump())

# --- Import DTOs ---

class ParsedLorebook(BaseModel):
    name: str
    description: str = ''
    entries: List[LoreEntryDTO] = Field(default_factory=list)
    settings: LorebookSettingsDTO = Field(default_factory=LorebookSettingsDTO)
    format: str
    version: Optional[str] = None
    original_data: Any = None


class LorebookImportDTO(BaseModel):
    file_data: str
    file_name: str = Field(..., max_length=255)
    file_type: Literal['json', 'png'] = 'json'
    custom_name: Optional[str] = Field(None, max_length=100)
    user_id: Optional[str] = None
    session_id: Optional[str] = None

# --- Lorebook DTOs ---

class LorebookBasicDTO(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    format: str
    entry_count: int
    imported_at: datetime
    last_used: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LorebookDTO(LorebookBasicDTO):
    version: Optional[str] = None
    is_active: bool = True
    settings: LorebookSettingsDTO
    entries: List[LoreEntryDTO] = Field(default_factory=list)


class ActiveLorebookDTO(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    entry_count: int
    format: str
    applied_at: datetime
    overrides: Dict[str, Any] = Field(default_factory=dict)
    activated_entries: int = 0


class LorebookStatsDTO(BaseModel):
    name: str
    format: str
    entry_count: int
    active_entries: int
    constant_entries: int
    total_keys: int
    active_chats: int
    total_chats: int
    imported_at: datetime
    last_used: Optional[datetime] = None

# --- Scan DTOs ---

class ActivatedEntryDTO(BaseModel):
    id: str
    lorebook_id: str
    lorebook_name: str
    comment: str = ''
    content: str
    position: int = 0
    priority: int = DEFAULT_ENTRY_PRIORITY
    depth: int = DEFAULT_ENTRY_DEPTH
    group_id: Optional[str] = None
    estimated_tokens: int = 0


class ScanResultDTO(BaseModel):
    activated_entries: List[ActivatedEntryDTO] = Field(default_factory=list)
    dropped_entries: List[str] = Field(default_factory=list)
    total_tokens: int = 0
    text: str = ''
