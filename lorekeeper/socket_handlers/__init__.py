from lorekeeper.events import SocketIOEventType
from lorekeeper.extensions import socketio
from .common import socketio_unicast
from .chat import *
from .lorebook import *

def init_app(app):
    pass

@socketio.on(SocketIOEventType.CONNECT)
def handle_connect():
    pass

@socketio.on(SocketIOEventType.PING)
def handle_ping():
    socketio_unicast(SocketIOEventType.PONG)
