import base64
import binascii
import json
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from lorekeeper.constants import FileType, MAX_NAME_ATTEMPTS, SCAN_SEPARATOR
from lorekeeper.context import context
from lorekeeper.dao.chat_dao import ChatDAO
from lorekeeper.dao.lorebook_dao import LorebookDAO
from lorekeeper.dto.lorebook_dto import (ActivatedEntryDTO, ActivationRecordDTO, ActiveLorebookDTO,
                                         ChatLorebookOverridesDTO, LoreEntryDTO, LorebookBasicDTO, LorebookDTO,
                                         LorebookImportDTO, LorebookSettingsDTO, LorebookStatsDTO, ScanResultDTO)
from lorekeeper.engine import ActivationRecord, LorebookSettings, LorebookSettingsError, activate_and_compose
from lorekeeper.extensions import db
from lorekeeper.lorebooks import LorebookParseError, get_validation_summary, parse_lorebook, validate_lorebook
from lorekeeper.models.chat import ChatMessage
from lorekeeper.models.lorebook import Lorebook, LorebookChatSetting
from lorekeeper.services.chat_service import ChatNotFoundError, check_chat_owner
from lorekeeper.utils.png import PngLorebookError, extract_lorebook_from_png
from lorekeeper.utils.tokenizers import get_size_function
from lorekeeper.utils.utils import create_logger

lorebook_service_log = create_logger(__name__, entity_name='LOREBOOK_SERVICE', level=context.log_level)


class LorebookServiceError(Exception):
    """Custom exception for lorebook service errors."""
    pass

class LorebookNotFoundError(LorebookServiceError):
    """Exception raised when a lorebook is not found or was deleted."""
    pass

class UnauthorizedAccessError(LorebookServiceError):
    """Exception raised when the caller does not own the lorebook or chat."""
    pass

class LorebookNotAppliedError(LorebookServiceError):
    """Exception raised when a lorebook is not active in a chat."""
    pass

class LorebookImportError(LorebookServiceError):
    """Exception raised when uploaded lorebook data cannot be imported."""
    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


# --- Helpers ---

def _now() -> datetime:
    return datetime.now(timezone.utc)

def _get_owned_lorebook(lorebook_id: str, user_id: Optional[str] = None,
                        session_id: Optional[str] = None) -> Lorebook:
    lorebook = LorebookDAO.get_lorebook_by_id(lorebook_id)
    if not lorebook or not lorebook.is_active:
        raise LorebookNotFoundError(f"Lorebook with ID {lorebook_id} not found.")
    if not lorebook.is_owned_by(user_id, session_id):
        raise UnauthorizedAccessError(f"Access to lorebook {lorebook_id} denied.")
    return lorebook

def _get_owned_chat(chat_id: str, user_id: Optional[str] = None, session_id: Optional[str] = None):
    chat = ChatDAO.get_chat_by_id(chat_id)
    if not chat:
        raise ChatNotFoundError(f"Chat with ID {chat_id} not found.")
    if not check_chat_owner(chat, user_id, session_id):
        raise UnauthorizedAccessError(f"Access to chat {chat_id} denied.")
    return chat

def _load_settings(lorebook: Lorebook) -> LorebookSettings:
    return LorebookSettingsDTO(**(lorebook.settings or {})).to_settings()

def _load_entries(lorebook: Lorebook) -> List[LoreEntryDTO]:
    entries = []
    for raw in lorebook.entries or []:
        try:
            entries.append(LoreEntryDTO(**raw))
        except ValidationError as e:
            lorebook_service_log.warning(f"Skipping stored entry {raw.get('id')!r} of lorebook {lorebook.id}: {e.error_count()} error(s)")
    return entries

def _load_records(setting: LorebookChatSetting) -> List[ActivationRecord]:
    records = []
    for raw in setting.activated_entries or []:
        try:
            records.append(ActivationRecordDTO(**raw).to_record())
        except ValidationError as e:
            lorebook_service_log.warning(f"Discarding stored activation record {raw!r}: {e.error_count()} error(s)")
    return records

def _decode_file_data(file_data: str, file_type: str) -> Any:
    """Turns uploaded file content (JSON text, base64 JSON or base64 PNG) into lorebook data."""
    if file_type == FileType.PNG:
        try:
            png_bytes = base64.b64decode(file_data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise LorebookImportError(f"PNG data is not valid base64: {e}")
        try:
            text = extract_lorebook_from_png(png_bytes)
        except PngLorebookError as e:
            raise LorebookImportError(str(e))
    else:
        text = file_data
        try:
            return json.loads(text)
        except ValueError:
            try:
                text = base64.b64decode(file_data, validate=True).decode('utf-8')
            except (binascii.Error, ValueError) as e:
                raise LorebookImportError(f"Invalid JSON format: {e}")

    try:
        return json.loads(text)
    except ValueError as e:
        raise LorebookImportError(f"Invalid JSON format: {e}")

def _unique_name(base_name: str, user_id: Optional[str], session_id: Optional[str]) -> str:
    if not LorebookDAO.name_exists(base_name, user_id, session_id):
        return base_name
    for counter in range(1, MAX_NAME_ATTEMPTS + 1):
        candidate = f"{base_name} ({counter})"
        if not LorebookDAO.name_exists(candidate, user_id, session_id):
            return candidate
    raise LorebookImportError(f"Could not find a free name for lorebook '{base_name}'")

def _to_active_dto(setting: LorebookChatSetting) -> ActiveLorebookDTO:
    lorebook = setting.lorebook
    return ActiveLorebookDTO(
        id=lorebook.id,
        name=lorebook.name,
        description=lorebook.description,
        entry_count=lorebook.entry_count,
        format=lorebook.format,
        applied_at=setting.applied_at,
        overrides=setting.overrides or {},
        activated_entries=len([r for r in setting.activated_entries or [] if r.get('active', True)])
    )

# --- Lorebook storage ---

def import_lorebook(import_data: LorebookImportDTO) -> LorebookBasicDTO:
    """
    Imports an uploaded lorebook for its owner. The data is validated and
    normalized before it is stored; a taken name gets a " (n)" suffix.
    """
    data = _decode_file_data(import_data.file_data, import_data.file_type)

    validation = validate_lorebook(data)
    for warning in validation.warnings:
        lorebook_service_log.debug(f"Import warning for '{import_data.file_name}': {warning}")
    if not validation.is_valid:
        raise LorebookImportError(get_validation_summary(validation), validation.errors)

    try:
        parsed = parse_lorebook(data, import_data.file_name)
    except LorebookParseError as e:
        raise LorebookImportError(str(e))

    try:
        name = _unique_name((import_data.custom_name or parsed.name).strip() or parsed.name,
                            import_data.user_id, import_data.session_id)
        lorebook = LorebookDAO.save_lorebook(Lorebook(
            user_id=import_data.user_id,
            session_id=import_data.session_id,
            name=name,
            description=parsed.description,
            format=parsed.format,
            version=parsed.version,
            entries=[entry.model_dump(mode='json') for entry in parsed.entries],
            settings=parsed.settings.model_dump(mode='json'),
            original_data=parsed.original_data,
            entry_count=len(parsed.entries),
            is_active=True,
            imported_at=_now()
        ))
        db.session.commit()
        lorebook_service_log.info(f"LorebookService: Imported {parsed.format} lorebook '{name}' ({lorebook.id}) with {lorebook.entry_count} entries.")
        return LorebookBasicDTO.model_validate(lorebook)
    except (SQLAlchemyError, LorebookServiceError) as e:
        db.session.rollback()
        lorebook_service_log.error(f"LorebookService: Error importing lorebook '{import_data.file_name}': {e}", exc_info=True)
        raise
    except Exception as e:
        db.session.rollback()
        lorebook_service_log.error(f"LorebookService: Unexpected error importing lorebook '{import_data.file_name}': {e}", exc_info=True)
        raise LorebookServiceError(f"An unexpected error occurred while importing the lorebook: {e}")

def get_user_lorebooks(user_id: Optional[str] = None, session_id: Optional[str] = None) -> List[LorebookBasicDTO]:
    """Lists the owner's lorebooks, most recently imported first."""
    return [LorebookBasicDTO.model_validate(lorebook)
            for lorebook in LorebookDAO.get_owner_lorebooks(user_id, session_id)]

def get_lorebook(lorebook_id: str, user_id: Optional[str] = None, session_id: Optional[str] = None) -> LorebookDTO:
    lorebook = _get_owned_lorebook(lorebook_id, user_id, session_id)
    return LorebookDTO(
        id=lorebook.id,
        name=lorebook.name,
        description=lorebook.description,
        format=lorebook.format,
        entry_count=lorebook.entry_count,
        imported_at=lorebook.imported_at,
        last_used=lorebook.last_used,
        version=lorebook.version,
        is_active=lorebook.is_active,
        settings=LorebookSettingsDTO(**(lorebook.settings or {})),
        entries=_load_entries(lorebook)
    )

def delete_lorebook(lorebook_id: str, user_id: Optional[str] = None, session_id: Optional[str] = None) -> None:
    """Soft-deletes a lorebook; chats using it stop scanning it."""
    lorebook = _get_owned_lorebook(lorebook_id, user_id, session_id)
    try:
        lorebook.is_active = False
        LorebookDAO.save_lorebook(lorebook)
        db.session.commit()
        lorebook_service_log.info(f"LorebookService: Deleted lorebook {lorebook_id}.")
    except SQLAlchemyError as e:
        db.session.rollback()
        lorebook_service_log.error(f"LorebookService: Database error deleting lorebook {lorebook_id}: {e}", exc_info=True)
        raise

def update_lorebook_usage(lorebook_id: str) -> None:
    lorebook = LorebookDAO.get_lorebook_by_id(lorebook_id)
    if not lorebook:
        raise LorebookNotFoundError(f"Lorebook with ID {lorebook_id} not found.")
    try:
        lorebook.last_used = _now()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        lorebook_service_log.error(f"LorebookService: Database error updating usage of {lorebook_id}: {e}", exc_info=True)
        raise

def get_lorebook_stats(lorebook_id: str, user_id: Optional[str] = None, session_id: Optional[str] = None) -> LorebookStatsDTO:
    lorebook = _get_owned_lorebook(lorebook_id, user_id, session_id)
    entries = _load_entries(lorebook)
    chat_settings = LorebookDAO.get_settings_for_lorebook(lorebook_id)
    return LorebookStatsDTO(
        name=lorebook.name,
        format=lorebook.format,
        entry_count=lorebook.entry_count,
        active_entries=sum(1 for entry in entries if entry.enabled),
        constant_entries=sum(1 for entry in entries if entry.constant),
        total_keys=sum(len(entry.keys) for entry in entries),
        active_chats=sum(1 for setting in chat_settings if setting.is_active),
        total_chats=len(chat_settings),
        imported_at=lorebook.imported_at,
        last_used=lorebook.last_used
    )

# --- Chat integration ---

def apply_lorebook_to_chat(chat_id: str, lorebook_id: str,
                           overrides: Optional[ChatLorebookOverridesDTO] = None,
                           user_id: Optional[str] = None, session_id: Optional[str] = None) -> ActiveLorebookDTO:
    """
    Activates a lorebook in a chat. Applying it again reactivates it and
    replaces the overrides while keeping the sticky/cooldown state.
    """
    _get_owned_chat(chat_id, user_id, session_id)
    _get_owned_lorebook(lorebook_id, user_id, session_id)
    overrides_dict = overrides.model_dump(exclude_none=True) if overrides else {}

    try:
        setting = LorebookDAO.get_chat_setting(chat_id, lorebook_id)
        if setting:
            setting.is_active = True
            setting.overrides = overrides_dict
        else:
            setting = LorebookChatSetting(
                chat_id=chat_id,
                lorebook_id=lorebook_id,
                applied_at=_now(),
                is_active=True,
                overrides=overrides_dict,
                activated_entries=[],
                turn=0
            )
        LorebookDAO.save_chat_setting(setting)
        db.session.commit()
        lorebook_service_log.info(f"LorebookService: Applied lorebook {lorebook_id} to chat {chat_id}.")
        return _to_active_dto(setting)
    except SQLAlchemyError as e:
        db.session.rollback()
        lorebook_service_log.error(f"LorebookService: Database error applying lorebook {lorebook_id} to chat {chat_id}: {e}", exc_info=True)
        raise

def remove_lorebook_from_chat(chat_id: str, lorebook_id: str,
                              user_id: Optional[str] = None, session_id: Optional[str] = None) -> None:
    _get_owned_chat(chat_id, user_id, session_id)
    setting = LorebookDAO.get_chat_setting(chat_id, lorebook_id)
    if not setting or not setting.is_active:
        raise LorebookNotAppliedError(f"Lorebook {lorebook_id} is not applied to chat {chat_id}.")
    try:
        setting.is_active = False
        LorebookDAO.save_chat_setting(setting)
        db.session.commit()
        lorebook_service_log.info(f"LorebookService: Removed lorebook {lorebook_id} from chat {chat_id}.")
    except SQLAlchemyError as e:
        db.session.rollback()
        lorebook_service_log.error(f"LorebookService: Database error removing lorebook {lorebook_id} from chat {chat_id}: {e}", exc_info=True)
        raise

def get_active_lorebooks(chat_id: str, user_id: Optional[str] = None,
                         session_id: Optional[str] = None) -> List[ActiveLorebookDTO]:
    _get_owned_chat(chat_id, user_id, session_id)
    return [_to_active_dto(setting) for setting in LorebookDAO.get_active_chat_settings(chat_id)]

def update_activated_entries(chat_id: str, lorebook_id: str, records: List[ActivationRecordDTO]) -> None:
    """Replaces the stored sticky/cooldown records of a lorebook in a chat."""
    setting = LorebookDAO.get_chat_setting(chat_id, lorebook_id)
    if not setting or not setting.is_active:
        raise LorebookNotAppliedError(f"Lorebook {lorebook_id} is not applied to chat {chat_id}.")
    try:
        setting.activated_entries = [record.model_dump() for record in records]
        LorebookDAO.save_chat_setting(setting)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        lorebook_service_log.error(f"LorebookService: Database error updating records for chat {chat_id}: {e}", exc_info=True)
        raise

# --- Scanning ---

def _scan(chat_id: str, buffer_for: Callable[[LorebookSettings], str], size_function: Optional[str],
          user_id: Optional[str], session_id: Optional[str]) -> ScanResultDTO:
    size_fn = get_size_function(size_function or context.size_function)

    with context.get_chat_lock(chat_id):
        _get_owned_chat(chat_id, user_id, session_id)
        activated: List[ActivatedEntryDTO] = []
        dropped: List[str] = []
        texts: List[str] = []

        try:
            for setting in LorebookDAO.get_active_chat_settings(chat_id):
                lorebook = setting.lorebook
                settings = _load_settings(lorebook).with_overrides(setting.overrides)
                entries = [entry.to_entry() for entry in _load_entries(lorebook)]

                # budget is shared across the chat's lorebooks in application order,
                # so candidates are measured joined after the lore already taken
                prefix = SCAN_SEPARATOR.join(texts + ['']) if texts else ''
                result, composed = activate_and_compose(entries, settings, buffer_for(settings),
                                                        prior_records=_load_records(setting),
                                                        turn=setting.turn,
                                                        size_fn=lambda text: size_fn(prefix + text),
                                                        separator=SCAN_SEPARATOR)

                setting.activated_entries = [record.to_dict() for record in result.next_records]
                setting.turn = setting.turn + 1
                LorebookDAO.save_chat_setting(setting)

                by_id = {entry.id: entry for entry in result.activated_entries}
                for entry_id in composed.included_ids:
                    entry = by_id[entry_id]
                    activated.append(ActivatedEntryDTO(
                        id=entry.id,
                        lorebook_id=lorebook.id,
                        lorebook_name=lorebook.name,
                        comment=entry.comment,
                        content=entry.content,
                        position=entry.position,
                        priority=entry.priority,
                        depth=entry.depth,
                        group_id=entry.group_id,
                        estimated_tokens=size_fn(entry.content)
                    ))
                dropped.extend(composed.dropped_ids + result.dropped_ids)
                if composed.text:
                    texts.append(composed.text)
                if result.activated_ids:
                    lorebook.last_used = _now()

            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            lorebook_service_log.error(f"LorebookService: Database error scanning chat {chat_id}: {e}", exc_info=True)
            raise
        except LorebookSettingsError as e:
            db.session.rollback()
            lorebook_service_log.error(f"LorebookService: Invalid lorebook settings while scanning chat {chat_id}: {e}")
            raise LorebookServiceError(f"Invalid lorebook settings: {e}")

    text = SCAN_SEPARATOR.join(texts)
    total = size_fn(text) if text else 0
    lorebook_service_log.debug(f"LorebookService: Chat {chat_id} scan activated {len(activated)} entries, {total} tokens.")
    return ScanResultDTO(activated_entries=activated, dropped_entries=dropped, total_tokens=total, text=text)

def scan_context_for_entries(chat_id: str, text: str, size_function: Optional[str] = None,
                             user_id: Optional[str] = None, session_id: Optional[str] = None) -> ScanResultDTO:
    """
    Runs one activation turn of every lorebook active in the chat against
    the given text, stores the resulting sticky/cooldown state and returns
    the composed lore.
    """
    return _scan(chat_id, lambda settings: text, size_function, user_id, session_id)

def _history_buffer(messages: List[ChatMessage], include_names: bool) -> str:
    if include_names:
        return '\n'.join(f"{message.role}: {message.content}" for message in messages)
    return '\n'.join(message.content for message in messages)

def scan_chat_history(chat_id: str, history_depth: Optional[int] = None, size_function: Optional[str] = None,
                      user_id: Optional[str] = None, session_id: Optional[str] = None) -> ScanResultDTO:
    """Scans the last history_depth messages of the chat."""
    depth = context.history_depth if history_depth is None else history_depth
    messages = ChatDAO.get_recent_messages(chat_id, depth)
    return _scan(chat_id, lambda settings: _history_buffer(messages, settings.include_names),
                 size_function, user_id, session_id)
