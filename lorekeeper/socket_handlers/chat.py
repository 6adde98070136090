from pydantic import ValidationError

from lorekeeper.extensions import socketio, log
from lorekeeper.events import SocketIOEventType
from .common import socketio_unicast, validation_error_summary
from lorekeeper.services import chat_service
from lorekeeper.services.chat_service import ChatNotFoundError
from lorekeeper.dto.chat_dto import ChatCreateDTO, MessageCreateDTO


@socketio.on(SocketIOEventType.CHAT_CREATE_REQUEST)
def handle_chat_create_request(req_json):
    try:
        chat_dto = chat_service.create_chat(ChatCreateDTO(**(req_json or {})))
        socketio_unicast(SocketIOEventType.CHAT_CREATE, {
            'message': 'success',
            'chat': chat_dto.model_dump(mode='json'),
        })
    except ValidationError as pve:
        log.error(f"DTO Validation error creating chat: {pve}")
        socketio_unicast(SocketIOEventType.CHAT_CREATE, {'error': validation_error_summary(pve)})
    except Exception as e:
        log.exception(f"Unexpected error handling chat create request: {e}")
        socketio_unicast(SocketIOEventType.CHAT_CREATE, {'error': f"An unexpected error occurred: {str(e)}"})


@socketio.on(SocketIOEventType.CHAT_REQUEST)
def handle_chat_request(req_json):
    try:
        chat_dto = chat_service.get_chat(req_json['id'])
        socketio_unicast(SocketIOEventType.CHAT, {
            'message': 'success',
            'chat': chat_dto.model_dump(mode='json'),
        })
    except ChatNotFoundError as e:
        log.warning(f"Chat not found handling chat request: {e}")
        socketio_unicast(SocketIOEventType.CHAT, {'error': str(e)})
    except KeyError as ke:
        log.error(f"Missing key in chat request: {ke}")
        socketio_unicast(SocketIOEventType.CHAT, {'error': f"Missing required field: {ke}"})
    except Exception as e:
        log.exception(f"Unexpected error handling chat request: {e}")
        socketio_unicast(SocketIOEventType.CHAT, {'error': f"An unexpected error occurred: {str(e)}"})


@socketio.on(SocketIOEventType.CHAT_MESSAGE_REQUEST)
def handle_chat_message_request(req_json):
    """Appends a message to a chat."""
    try:
        message_dto = chat_service.add_message(MessageCreateDTO(**(req_json or {})))
        socketio_unicast(SocketIOEventType.CHAT_MESSAGE, {
            'message': 'success',
            'chat_message': message_dto.model_dump(mode='json'),
        })
    except ValidationError as pve:
        log.error(f"DTO Validation error adding message: {pve}")
        socketio_unicast(SocketIOEventType.CHAT_MESSAGE, {'error': validation_error_summary(pve)})
    except ChatNotFoundError as e:
        log.warning(f"Chat not found adding message: {e}")
        socketio_unicast(SocketIOEventType.CHAT_MESSAGE, {'error': str(e)})
    except Exception as e:
        log.exception(f"Unexpected error handling chat message request: {e}")
        socketio_unicast(SocketIOEventType.CHAT_MESSAGE, {'error': f"An unexpected error occurred: {str(e)}"})


@socketio.on(SocketIOEventType.CHAT_DELETE_REQUEST)
def handle_chat_delete_request(req_json):
    try:
        chat_id = req_json['id']
        chat_service.delete_chat(chat_id)
        socketio_unicast(SocketIOEventType.CHAT_DELETE, {'message': 'success', 'id': chat_id})
    except ChatNotFoundError as e:
        log.warning(f"Chat not found handling delete request: {e}")
        socketio_unicast(SocketIOEventType.CHAT_DELETE, {'error': str(e)})
    except KeyError as ke:
        log.error(f"Missing key in chat delete request: {ke}")
        socketio_unicast(SocketIOEventType.CHAT_DELETE, {'error': f"Missing required field: {ke}"})
    except Exception as e:
        log.exception(f"Unexpected error handling chat delete request: {e}")
        socketio_unicast(SocketIOEventType.CHAT_DELETE, {'error': f"An unexpected error occurred: {str(e)}"})
