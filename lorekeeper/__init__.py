import os
import logging
from flask import Flask
from lorekeeper.config import FlaskConfig, LoreConfig
from lorekeeper.context import context
from lorekeeper.extensions import db, migrate, socketio, log
from lorekeeper.utils.utils import set_log_level

def create_app(config=FlaskConfig):
    app = Flask(__name__)
    app.config.from_object(config)
    db.init_app(app)
    migrate.init_app(app, db)
    socketio.init_app(app)

    app_log_level_str = os.getenv("APP_LOG_LEVEL", "INFO").upper()
    flask_log_level_str = os.getenv("FLASK_LOG_LEVEL", "WARNING").upper()
    log_level_map = logging.getLevelNamesMapping()

    context.log_level = log_level_map.get(app_log_level_str, logging.INFO)
    set_log_level(context.log_level)
    log.setLevel(log_level_map.get(flask_log_level_str, logging.WARNING))

    context.size_function = os.getenv("LORE_SIZE_FUNCTION", LoreConfig.SIZE_FUNCTION)
    try:
        context.history_depth = max(0, int(os.getenv("LORE_HISTORY_DEPTH", LoreConfig.HISTORY_DEPTH)))
    except ValueError:
        log.warning("LORE_HISTORY_DEPTH is not an integer, using the default")
        context.history_depth = LoreConfig.HISTORY_DEPTH

    from . import models, socket_handlers
    models.init_app(app, context)
    socket_handlers.init_app(app)

    from .routes import main_bp
    app.register_blueprint(main_bp)

    return app
