import os

class FlaskConfig:
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///data.db')
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024

class FlaskTestingConfig:
    TESTING = True
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'

class LoreConfig:
    SIZE_FUNCTION = 'estimate'
    HISTORY_DEPTH = 4
