from typing import List, Optional
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session
from lorekeeper.extensions import db
from lorekeeper.models.lorebook import Lorebook, LorebookChatSetting
from lorekeeper.utils.utils import create_logger
from lorekeeper.context import context

lorebook_dao_log = create_logger(__name__, entity_name='LOREBOOK_DAO', level=context.log_level)

class LorebookDAO:
    """Data Access Object for Lorebook and LorebookChatSetting operations."""

    @staticmethod
    def _get_session(session: Optional[Session] = None) -> Session:
        """Gets the current session or the default one."""
        return session or db.session

    @staticmethod
    def get_lorebook_by_id(lorebook_id: str, session: Optional[Session] = None) -> Optional[Lorebook]:
        """Retrieves a lorebook by its ID, including soft-deleted ones."""
        current_session = LorebookDAO._get_session(session)
        stmt = select(Lorebook).where(Lorebook.id == lorebook_id)
        return current_session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def get_owner_lorebooks(user_id: Optional[str] = None, session_id: Optional[str] = None,
                            include_inactive: bool = False, session: Optional[Session] = None) -> List[Lorebook]:
        """Retrieves an owner's lorebooks, most recently imported first."""
        current_session = LorebookDAO._get_session(session)
        stmt = select(Lorebook)
        if user_id is not None:
            stmt = stmt.where(Lorebook.user_id == user_id)
        if session_id is not None:
            stmt = stmt.where(Lorebook.session_id == session_id)
        if not include_inactive:
            stmt = stmt.where(Lorebook.is_active.is_(True))
        stmt = stmt.order_by(desc(Lorebook.imported_at))
        return list(current_session.execute(stmt).scalars().all())

    @staticmethod
    def name_exists(name: str, user_id: Optional[str] = None, session_id: Optional[str] = None,
                    session: Optional[Session] = None) -> bool:
        """Checks whether an owner already has an active lorebook with this name."""
        current_session = LorebookDAO._get_session(session)
        stmt = select(func.count()).select_from(Lorebook).where(
            Lorebook.name == name,
            Lorebook.is_active.is_(True),
            Lorebook.user_id.is_(None) if user_id is None else Lorebook.user_id == user_id,
            Lorebook.session_id.is_(None) if session_id is None else Lorebook.session_id == session_id,
        )
        return current_session.execute(stmt).scalar_one() > 0

    @staticmethod
    def save_lorebook(lorebook: Lorebook, session: Optional[Session] = None) -> Lorebook:
        """Adds or updates a lorebook in the session (no commit)."""
        current_session = LorebookDAO._get_session(session)
        current_session.add(lorebook)
        return lorebook

    @staticmethod
    def get_chat_setting(chat_id: str, lorebook_id: str, session: Optional[Session] = None) -> Optional[LorebookChatSetting]:
        """Retrieves the setting linking a lorebook to a chat, active or not."""
        current_session = LorebookDAO._get_session(session)
        stmt = select(LorebookChatSetting).where(
            LorebookChatSetting.chat_id == chat_id,
            LorebookChatSetting.lorebook_id == lorebook_id
        )
        return current_session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def get_active_chat_settings(chat_id: str, session: Optional[Session] = None) -> List[LorebookChatSetting]:
        """Retrieves the active settings of a chat whose lorebooks are not deleted, oldest first."""
        current_session = LorebookDAO._get_session(session)
        stmt = select(LorebookChatSetting) \
            .join(LorebookChatSetting.lorebook) \
            .where(
                LorebookChatSetting.chat_id == chat_id,
                LorebookChatSetting.is_active.is_(True),
                Lorebook.is_active.is_(True)
            ) \
            .order_by(LorebookChatSetting.applied_at, LorebookChatSetting.id)
        return list(current_session.execute(stmt).unique().scalars().all())

    @staticmethod
    def get_settings_for_lorebook(lorebook_id: str, session: Optional[Session] = None) -> List[LorebookChatSetting]:
        """Retrieves every chat setting of a lorebook."""
        current_session = LorebookDAO._get_session(session)
        stmt = select(LorebookChatSetting).where(LorebookChatSetting.lorebook_id == lorebook_id)
        return list(current_session.execute(stmt).unique().scalars().all())

    @staticmethod
    def save_chat_setting(setting: LorebookChatSetting, session: Optional[Session] = None) -> LorebookChatSetting:
        """Adds or updates a chat setting in the session (no commit)."""
        current_session = LorebookDAO._get_session(session)
        current_session.add(setting)
        return setting
