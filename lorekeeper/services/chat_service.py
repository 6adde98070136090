from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from lorekeeper.models.chat import Chat, ChatMessage
from lorekeeper.dao.chat_dao import ChatDAO
from lorekeeper.dto.chat_dto import ChatDTO, ChatCreateDTO, MessageDTO, MessageCreateDTO
from lorekeeper.extensions import db
from lorekeeper.context import context
from lorekeeper.utils.utils import create_logger

chat_service_log = create_logger(__name__, entity_name='CHAT_SERVICE', level=context.log_level)


class ChatServiceError(Exception):
    """Custom exception for chat service errors."""
    pass

class ChatNotFoundError(ChatServiceError):
    """Exception raised when a chat is not found."""
    pass


def _map_message_model_to_dto(message: ChatMessage) -> MessageDTO:
    """Maps a ChatMessage SQLAlchemy model to a MessageDTO."""
    return MessageDTO(
        id=message.id,
        chat_id=message.chat_id,
        position=message.position,
        role=message.role,
        content=message.content,
        creation_time=message.creation_time.isoformat()
    )

def _map_chat_model_to_dto(chat: Chat, include_messages: bool = True) -> ChatDTO:
    """Maps a Chat SQLAlchemy model to a ChatDTO."""
    return ChatDTO(
        id=chat.id,
        name=chat.name,
        user_id=chat.user_id,
        session_id=chat.session_id,
        creation_time=chat.creation_time.isoformat(),
        messages=[_map_message_model_to_dto(msg) for msg in chat.messages] if include_messages else []
    )

def get_chat_model(chat_id: str) -> Chat:
    """Retrieves a chat model or raises ChatNotFoundError."""
    chat = ChatDAO.get_chat_by_id(chat_id)
    if not chat:
        raise ChatNotFoundError(f"Chat with ID {chat_id} not found.")
    return chat


def get_chat(chat_id: str) -> ChatDTO:
    """Retrieves a chat with its messages."""
    return _map_chat_model_to_dto(get_chat_model(chat_id))

def create_chat(chat_data: ChatCreateDTO) -> ChatDTO:
    """Creates a new, empty chat."""
    try:
        chat = ChatDAO.save_chat(Chat(
            name=chat_data.name,
            user_id=chat_data.user_id,
            session_id=chat_data.session_id
        ))
        db.session.commit()
        chat_service_log.info(f"ChatService: Created chat {chat.id} '{chat.name}'.")
        return _map_chat_model_to_dto(chat, include_messages=False)
    except SQLAlchemyError as e:
        db.session.rollback()
        chat_service_log.error(f"ChatService: Database error creating chat: {e}", exc_info=True)
        raise

def add_message(message_data: MessageCreateDTO) -> MessageDTO:
    """Appends a message to the end of a chat."""
    get_chat_model(message_data.chat_id)
    try:
        message = ChatDAO.save_message(ChatMessage(
            chat_id=message_data.chat_id,
            position=ChatDAO.get_next_message_position(message_data.chat_id),
            role=message_data.role,
            content=message_data.content
        ))
        db.session.commit()
        chat_service_log.debug(f"ChatService: Added message {message.id} to chat {message.chat_id}.")
        return _map_message_model_to_dto(message)
    except SQLAlchemyError as e:
        db.session.rollback()
        chat_service_log.error(f"ChatService: Database error adding message to chat {message_data.chat_id}: {e}", exc_info=True)
        raise

def get_recent_messages(chat_id: str, limit: int) -> List[MessageDTO]:
    """Returns the last `limit` messages of a chat, oldest first."""
    get_chat_model(chat_id)
    return [_map_message_model_to_dto(msg) for msg in ChatDAO.get_recent_messages(chat_id, limit)]

def delete_chat(chat_id: str) -> None:
    """Deletes a chat with its messages and lorebook settings."""
    chat = get_chat_model(chat_id)
    try:
        ChatDAO.delete_chat(chat)
        db.session.commit()
        chat_service_log.info(f"ChatService: Deleted chat {chat_id}.")
    except SQLAlchemyError as e:
        db.session.rollback()
        chat_service_log.error(f"ChatService: Database error deleting chat {chat_id}: {e}", exc_info=True)
        raise

def check_chat_owner(chat: Chat, user_id: Optional[str] = None, session_id: Optional[str] = None) -> bool:
    if user_id is not None and chat.user_id is not None and chat.user_id != user_id:
        return False
    if session_id is not None and chat.session_id is not None and chat.session_id != session_id:
        return False
    return True
