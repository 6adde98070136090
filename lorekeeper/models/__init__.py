from .chat import Chat, ChatMessage
from .lorebook import Lorebook, LorebookChatSetting

__all__ = [
    'Chat',
    'ChatMessage',
    'Lorebook',
    'LorebookChatSetting',
]

def init_app(app, context):
    pass
