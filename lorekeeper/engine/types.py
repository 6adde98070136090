from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from lorekeeper.constants import (DEFAULT_ENTRY_PRIORITY, DEFAULT_ENTRY_DEPTH, DEFAULT_GROUP_WEIGHT,
                                  DEFAULT_SCAN_DEPTH, DEFAULT_TOKEN_BUDGET, DEFAULT_RECURSION_DEPTH,
                                  DEFAULT_MAX_DEPTH)


class LorebookSettingsError(ValueError):
    """Raised when lorebook settings are not usable (negative bounds, unknown strategy)."""
    pass


class SelectiveLogic(IntEnum):
    """
    How secondary keys gate a primary key match. Values follow the
    SillyTavern world info numbering.
    """
    AND_ANY = 0
    NOT_ALL = 1
    NOT_ANY = 2
    AND_ALL = 3


class InsertionStrategy(str, Enum):
    PRIORITY = 'priority'
    INSERTION_ORDER = 'insertion_order'


@dataclass
class LoreEntry:
    id: str
    keys: List[str]
    content: str
    enabled: bool = True
    priority: int = DEFAULT_ENTRY_PRIORITY
    insertion_order: int = 0

    case_sensitive: Optional[bool] = None
    match_whole_words: Optional[bool] = None

    sticky: Optional[int] = None
    cooldown: Optional[int] = None
    delay: Optional[int] = None

    group_id: Optional[str] = None
    group_weight: int = DEFAULT_GROUP_WEIGHT
    use_group_scoring: Optional[bool] = None

    secondary_keys: List[str] = field(default_factory=list)
    selective: bool = False
    selective_logic: SelectiveLogic = SelectiveLogic.AND_ANY
    constant: bool = False
    exclude_recursion: bool = False
    prevent_recursion: bool = False

    # passed through to the prompt assembler
    comment: str = ''
    position: int = 0
    depth: int = DEFAULT_ENTRY_DEPTH

    @property
    def usable_keys(self) -> List[str]:
        return [key for key in self.keys if key and key.strip()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'keys': list(self.keys),
            'content': self.content,
            'comment': self.comment,
            'priority': self.priority,
            'insertion_order': self.insertion_order,
            'position': self.position,
            'depth': self.depth,
            'group_id': self.group_id,
        }


@dataclass
class LorebookSettings:
    recursive: bool = False
    scan_depth: int = DEFAULT_SCAN_DEPTH
    recursion_depth: int = DEFAULT_RECURSION_DEPTH
    recursion_steps: int = 0
    token_budget: int = DEFAULT_TOKEN_BUDGET
    budget_cap: int = 0
    min_activations: int = 0
    max_depth: int = DEFAULT_MAX_DEPTH
    insertion_strategy: InsertionStrategy = InsertionStrategy.PRIORITY
    use_group_scoring: bool = False
    case_sensitive: bool = False
    match_whole_words: bool = False
    include_names: bool = True

    def validate(self) -> 'LorebookSettings':
        """
        Checks the settings and returns them unchanged.
        Raises LorebookSettingsError instead of clamping bad values.
        """
        for name in ('scan_depth', 'recursion_depth', 'recursion_steps', 'token_budget',
                     'budget_cap', 'min_activations', 'max_depth'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise LorebookSettingsError(f"Setting '{name}' must be an integer, got {value!r}")
            if value < 0:
                raise LorebookSettingsError(f"Setting '{name}' must not be negative, got {value}")

        try:
            self.insertion_strategy = InsertionStrategy(self.insertion_strategy)
        except ValueError:
            raise LorebookSettingsError(f"Unknown insertion strategy '{self.insertion_strategy}'")
        return self

    @property
    def effective_budget(self) -> int:
        if self.budget_cap > 0:
            return min(self.token_budget, self.budget_cap)
        return self.token_budget

    @property
    def recursion_bound(self) -> int:
        """Maximum number of recursive passes after the initial scan."""
        if not self.recursive:
            return 0
        bound = min(self.scan_depth, self.recursion_depth)
        if self.recursion_steps > 0:
            bound = min(bound, self.recursion_steps)
        return bound

    def with_overrides(self, overrides: Optional[Dict[str, Any]]) -> 'LorebookSettings':
        if not overrides:
            return replace(self)
        known = {key: value for key, value in overrides.items()
                 if value is not None and key in self.__dataclass_fields__}
        return replace(self, **known)


@dataclass
class ActivationRecord:
    entry_id: str
    activated_at_turn: int
    sticky: int = 0
    cooldown: int = 0
    delay: int = 0
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entry_id': self.entry_id,
            'activated_at_turn': self.activated_at_turn,
            'sticky': self.sticky,
            'cooldown': self.cooldown,
            'delay': self.delay,
            'active': self.active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActivationRecord':
        return cls(
            entry_id=str(data['entry_id']),
            activated_at_turn=int(data.get('activated_at_turn', 0)),
            sticky=int(data.get('sticky') or 0),
            cooldown=int(data.get('cooldown') or 0),
            delay=int(data.get('delay') or 0),
            active=bool(data.get('active', True)),
        )


@dataclass
class ActivationResult:
    activated_ids: List[str]
    next_records: List[ActivationRecord]
    activated_entries: List[LoreEntry] = field(default_factory=list)
    dropped_ids: List[str] = field(default_factory=list)
    skipped_ids: List[str] = field(default_factory=list)
    passes: int = 0
    min_activations_met: bool = True
    aborted: bool = False


@dataclass
class ComposedContext:
    text: str
    included_ids: List[str]
    size: int = 0
    dropped_ids: List[str] = field(default_factory=list)
