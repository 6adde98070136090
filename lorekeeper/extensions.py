import logging
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate(render_as_batch=True)
# scans are serialized with threading locks, so handlers run on threads
socketio = SocketIO(async_mode='threading')
log = logging.getLogger('werkzeug')
