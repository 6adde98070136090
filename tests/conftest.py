import pytest
from lorekeeper import create_app
from lorekeeper.config import FlaskTestingConfig
from lorekeeper.extensions import db
# register socket handlers before any init_app so every module-scoped app gets them
import lorekeeper.socket_handlers  # noqa: F401

@pytest.fixture(scope='module')
def app():
    flask_app = create_app(FlaskTestingConfig)

    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()

@pytest.fixture(scope='module')
def test_client(app):
    return app.test_client()
