from pydantic import ValidationError

from lorekeeper.extensions import socketio, log
from lorekeeper.events import SocketIOEventType
from .common import socketio_unicast, validation_error_summary
from lorekeeper.services import lorebook_service
from lorekeeper.services.chat_service import ChatNotFoundError
from lorekeeper.services.lorebook_service import (LorebookImportError, LorebookNotAppliedError, LorebookNotFoundError,
                                                  LorebookServiceError, UnauthorizedAccessError)
from lorekeeper.dto.lorebook_dto import ChatLorebookOverridesDTO, LorebookImportDTO


def _owner(req_json):
    return req_json.get('user_id'), req_json.get('session_id')


@socketio.on(SocketIOEventType.LOREBOOK_IMPORT_REQUEST)
def handle_lorebook_import_request(req_json):
    """Handles upload of a lorebook file (JSON text or base64 PNG)."""
    try:
        import_dto = LorebookImportDTO(**(req_json or {}))
        lorebook_dto = lorebook_service.import_lorebook(import_dto)
        socketio_unicast(SocketIOEventType.LOREBOOK_IMPORT, {
            'message': 'success',
            'lorebook': lorebook_dto.model_dump(mode='json'),
        })
    except ValidationError as pve:
        log.error(f"DTO Validation error importing lorebook: {pve}")
        socketio_unicast(SocketIOEventType.LOREBOOK_IMPORT, {'error': validation_error_summary(pve)})
    except LorebookImportError as e:
        log.warning(f"Lorebook import rejected: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_IMPORT, {'error': str(e), 'errors': e.errors})
    except LorebookServiceError as e:
        log.error(f"Service error importing lorebook: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_IMPORT, {'error': str(e)})
    except Exception as e:
        log.exception(f"Unexpected error handling lorebook import request: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_IMPORT, {'error': "An unexpected server error occurred."})


@socketio.on(SocketIOEventType.LOREBOOK_LIST_REQUEST)
def handle_lorebook_list_request(req_json=None):
    try:
        user_id, session_id = _owner(req_json or {})
        lorebooks = lorebook_service.get_user_lorebooks(user_id=user_id, session_id=session_id)
        socketio_unicast(SocketIOEventType.LOREBOOK_LIST, {
            'lorebooks': [lorebook.model_dump(mode='json') for lorebook in lorebooks]
        })
    except Exception as e:
        log.exception(f"Error handling lorebook list request: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_LIST, {
            'error': f"An error occurred while fetching the lorebook list: {str(e)}"
        })


@socketio.on(SocketIOEventType.LOREBOOK_REQUEST)
def handle_lorebook_request(req_json):
    try:
        user_id, session_id = _owner(req_json)
        lorebook_dto = lorebook_service.get_lorebook(req_json['id'], user_id=user_id, session_id=session_id)
        socketio_unicast(SocketIOEventType.LOREBOOK, {
            'message': 'success',
            'lorebook': lorebook_dto.model_dump(mode='json'),
        })
    except (LorebookNotFoundError, UnauthorizedAccessError) as e:
        log.warning(f"Lorebook request refused: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK, {'error': str(e)})
    except KeyError as ke:
        log.error(f"Missing key in lorebook request: {ke}")
        socketio_unicast(SocketIOEventType.LOREBOOK, {'error': f"Missing required field: {ke}"})
    except Exception as e:
        log.exception(f"Unexpected error handling lorebook request: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK, {'error': f"An unexpected error occurred: {str(e)}"})


@socketio.on(SocketIOEventType.LOREBOOK_DELETE_REQUEST)
def handle_lorebook_delete_request(req_json):
    try:
        lorebook_id = req_json['id']
        user_id, session_id = _owner(req_json)
        lorebook_service.delete_lorebook(lorebook_id, user_id=user_id, session_id=session_id)
        socketio_unicast(SocketIOEventType.LOREBOOK_DELETE, {'message': 'success', 'id': lorebook_id})
    except (LorebookNotFoundError, UnauthorizedAccessError) as e:
        log.warning(f"Lorebook delete refused: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_DELETE, {'error': str(e)})
    except KeyError as ke:
        log.error(f"Missing key in lorebook delete request: {ke}")
        socketio_unicast(SocketIOEventType.LOREBOOK_DELETE, {'error': f"Missing required field: {ke}"})
    except Exception as e:
        log.exception(f"Unexpected error handling lorebook delete request: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_DELETE, {'error': f"An unexpected error occurred: {str(e)}"})


@socketio.on(SocketIOEventType.LOREBOOK_STATS_REQUEST)
def handle_lorebook_stats_request(req_json):
    try:
        user_id, session_id = _owner(req_json)
        stats = lorebook_service.get_lorebook_stats(req_json['id'], user_id=user_id, session_id=session_id)
        socketio_unicast(SocketIOEventType.LOREBOOK_STATS, {
            'message': 'success',
            'stats': stats.model_dump(mode='json'),
        })
    except (LorebookNotFoundError, UnauthorizedAccessError) as e:
        log.warning(f"Lorebook stats refused: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_STATS, {'error': str(e)})
    except KeyError as ke:
        log.error(f"Missing key in lorebook stats request: {ke}")
        socketio_unicast(SocketIOEventType.LOREBOOK_STATS, {'error': f"Missing required field: {ke}"})
    except Exception as e:
        log.exception(f"Unexpected error handling lorebook stats request: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_STATS, {'error': f"An unexpected error occurred: {str(e)}"})


@socketio.on(SocketIOEventType.LOREBOOK_APPLY_REQUEST)
def handle_lorebook_apply_request(req_json):
    """Applies a lorebook to a chat, optionally with per-chat overrides."""
    try:
        user_id, session_id = _owner(req_json)
        overrides = ChatLorebookOverridesDTO(**(req_json.get('overrides') or {}))
        active_dto = lorebook_service.apply_lorebook_to_chat(
            req_json['chat_id'],
            req_json['lorebook_id'],
            overrides=overrides,
            user_id=user_id,
            session_id=session_id
        )
        socketio_unicast(SocketIOEventType.LOREBOOK_APPLY, {
            'message': 'success',
            'lorebook': active_dto.model_dump(mode='json'),
        })
    except ValidationError as pve:
        log.error(f"DTO Validation error applying lorebook: {pve}")
        socketio_unicast(SocketIOEventType.LOREBOOK_APPLY, {'error': validation_error_summary(pve)})
    except (LorebookNotFoundError, ChatNotFoundError, UnauthorizedAccessError) as e:
        log.warning(f"Lorebook apply refused: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_APPLY, {'error': str(e)})
    except KeyError as ke:
        log.error(f"Missing key in lorebook apply request: {ke}")
        socketio_unicast(SocketIOEventType.LOREBOOK_APPLY, {'error': f"Missing required field: {ke}"})
    except Exception as e:
        log.exception(f"Unexpected error handling lorebook apply request: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_APPLY, {'error': f"An unexpected error occurred: {str(e)}"})


@socketio.on(SocketIOEventType.LOREBOOK_REMOVE_REQUEST)
def handle_lorebook_remove_request(req_json):
    try:
        user_id, session_id = _owner(req_json)
        lorebook_service.remove_lorebook_from_chat(req_json['chat_id'], req_json['lorebook_id'],
                                                   user_id=user_id, session_id=session_id)
        socketio_unicast(SocketIOEventType.LOREBOOK_REMOVE, {
            'message': 'success',
            'chat_id': req_json['chat_id'],
            'lorebook_id': req_json['lorebook_id'],
        })
    except (LorebookNotAppliedError, ChatNotFoundError, UnauthorizedAccessError) as e:
        log.warning(f"Lorebook remove refused: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_REMOVE, {'error': str(e)})
    except KeyError as ke:
        log.error(f"Missing key in lorebook remove request: {ke}")
        socketio_unicast(SocketIOEventType.LOREBOOK_REMOVE, {'error': f"Missing required field: {ke}"})
    except Exception as e:
        log.exception(f"Unexpected error handling lorebook remove request: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_REMOVE, {'error': f"An unexpected error occurred: {str(e)}"})


@socketio.on(SocketIOEventType.LOREBOOK_ACTIVE_LIST_REQUEST)
def handle_lorebook_active_list_request(req_json):
    try:
        user_id, session_id = _owner(req_json)
        active = lorebook_service.get_active_lorebooks(req_json['chat_id'], user_id=user_id, session_id=session_id)
        socketio_unicast(SocketIOEventType.LOREBOOK_ACTIVE_LIST, {
            'chat_id': req_json['chat_id'],
            'lorebooks': [lorebook.model_dump(mode='json') for lorebook in active]
        })
    except (ChatNotFoundError, UnauthorizedAccessError) as e:
        log.warning(f"Active lorebook list refused: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_ACTIVE_LIST, {'error': str(e)})
    except KeyError as ke:
        log.error(f"Missing key in active lorebook list request: {ke}")
        socketio_unicast(SocketIOEventType.LOREBOOK_ACTIVE_LIST, {'error': f"Missing required field: {ke}"})
    except Exception as e:
        log.exception(f"Unexpected error handling active lorebook list request: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_ACTIVE_LIST, {'error': f"An unexpected error occurred: {str(e)}"})


@socketio.on(SocketIOEventType.LOREBOOK_SCAN_REQUEST)
def handle_lorebook_scan_request(req_json):
    """
    Runs one lore activation turn for a chat. Scans 'text' when given,
    otherwise the chat's recent messages.
    """
    try:
        chat_id = req_json['chat_id']
        user_id, session_id = _owner(req_json)
        size_function = req_json.get('size_function')
        if req_json.get('text') is not None:
            result = lorebook_service.scan_context_for_entries(chat_id, req_json['text'], size_function=size_function,
                                                               user_id=user_id, session_id=session_id)
        else:
            result = lorebook_service.scan_chat_history(chat_id, req_json.get('history_depth'),
                                                        size_function=size_function,
                                                        user_id=user_id, session_id=session_id)
        socketio_unicast(SocketIOEventType.LOREBOOK_SCAN, {
            'message': 'success',
            'chat_id': chat_id,
            'result': result.model_dump(mode='json'),
        })
    except (ChatNotFoundError, UnauthorizedAccessError, LorebookServiceError) as e:
        log.warning(f"Lorebook scan refused: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_SCAN, {'error': str(e)})
    except KeyError as ke:
        log.error(f"Missing key in lorebook scan request: {ke}")
        socketio_unicast(SocketIOEventType.LOREBOOK_SCAN, {'error': f"Missing required field: {ke}"})
    except Exception as e:
        log.exception(f"Unexpected error handling lorebook scan request: {e}")
        socketio_unicast(SocketIOEventType.LOREBOOK_SCAN, {'error': f"An unexpected error occurred: {str(e)}"})
