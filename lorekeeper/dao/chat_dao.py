from typing import List, Optional
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session
from lorekeeper.extensions import db
from lorekeeper.models.chat import Chat, ChatMessage
from lorekeeper.utils.utils import create_logger
from lorekeeper.context import context

chat_dao_log = create_logger(__name__, entity_name='CHAT_DAO', level=context.log_level)

class ChatDAO:
    """Data Access Object for Chat and ChatMessage operations."""

    @staticmethod
    def _get_session(session: Optional[Session] = None) -> Session:
        """Gets the current session or the default one."""
        return session or db.session

    @staticmethod
    def get_chat_by_id(chat_id: str, session: Optional[Session] = None) -> Optional[Chat]:
        """Retrieves a chat by its ID."""
        current_session = ChatDAO._get_session(session)
        stmt = select(Chat).where(Chat.id == chat_id)
        return current_session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def save_chat(chat: Chat, session: Optional[Session] = None) -> Chat:
        """Adds or updates a chat in the session (no commit)."""
        current_session = ChatDAO._get_session(session)
        current_session.add(chat)
        return chat

    @staticmethod
    def delete_chat(chat: Chat, session: Optional[Session] = None):
        """Marks a chat for deletion (no commit)."""
        current_session = ChatDAO._get_session(session)
        current_session.delete(chat)

    @staticmethod
    def save_message(message: ChatMessage, session: Optional[Session] = None) -> ChatMessage:
        """Adds or updates a message in the session (no commit)."""
        current_session = ChatDAO._get_session(session)
        current_session.add(message)
        return message

    @staticmethod
    def get_recent_messages(chat_id: str, limit: int, session: Optional[Session] = None) -> List[ChatMessage]:
        """Retrieves the last `limit` messages of a chat, oldest first."""
        if limit <= 0:
            return []
        current_session = ChatDAO._get_session(session)
        stmt = select(ChatMessage) \
            .where(ChatMessage.chat_id == chat_id) \
            .order_by(desc(ChatMessage.position)) \
            .limit(limit)
        messages = list(current_session.execute(stmt).scalars().all())
        messages.reverse()
        return messages

    @staticmethod
    def get_next_message_position(chat_id: str, session: Optional[Session] = None) -> int:
        """Returns the position the next message of a chat should take."""
        current_session = ChatDAO._get_session(session)
        stmt = select(func.max(ChatMessage.position)).where(ChatMessage.chat_id == chat_id)
        last_position = current_session.execute(stmt).scalar_one_or_none()
        return 0 if last_position is None else last_position + 1
