class SocketIOEventType:
    # receivable events
    CONNECT = 'connect'
    PING = 'ping'
    ERROR = 'error'

    CHAT_CREATE_REQUEST = 'chat_create_request'
    CHAT_REQUEST = 'chat_request'
    CHAT_MESSAGE_REQUEST = 'chat_message_request'
    CHAT_DELETE_REQUEST = 'chat_delete_request'

    LOREBOOK_IMPORT_REQUEST = 'lorebook_import_request'
    LOREBOOK_LIST_REQUEST = 'lorebook_list_request'
    LOREBOOK_REQUEST = 'lorebook_request'
    LOREBOOK_DELETE_REQUEST = 'lorebook_delete_request'
    LOREBOOK_STATS_REQUEST = 'lorebook_stats_request'
    LOREBOOK_APPLY_REQUEST = 'lorebook_apply_request'
    LOREBOOK_REMOVE_REQUEST = 'lorebook_remove_request'
    LOREBOOK_ACTIVE_LIST_REQUEST = 'lorebook_active_list_request'
    LOREBOOK_SCAN_REQUEST = 'lorebook_scan_request'

    # emittable events
    PONG = 'pong'

    CHAT_CREATE = 'chat_create'
    CHAT = 'chat'
    CHAT_MESSAGE = 'chat_message'
    CHAT_DELETE = 'chat_delete'

    LOREBOOK_IMPORT = 'lorebook_import'
    LOREBOOK_LIST = 'lorebook_list'
    LOREBOOK = 'lorebook'
    LOREBOOK_DELETE = 'lorebook_delete'
    LOREBOOK_STATS = 'lorebook_stats'
    LOREBOOK_APPLY = 'lorebook_apply'
    LOREBOOK_REMOVE = 'lorebook_remove'
    LOREBOOK_ACTIVE_LIST = 'lorebook_active_list'
    LOREBOOK_SCAN = 'lorebook_scan'
