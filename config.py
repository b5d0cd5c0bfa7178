import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

TESTING = bool(os.environ.get('FLASK_TESTING'))

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-key-change-in-prod')
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL',
        'sqlite:///:memory:' if TESTING else 'sqlite:///' + os.path.join(BASE_DIR, 'instance', 'inventory.db')
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # last_modified_by for devices created by onboarding
    SYSTEM_ACTOR = os.environ.get('SYSTEM_ACTOR', 'Admin')
    FORM_SYSTEM_ACTOR = os.environ.get('FORM_SYSTEM_ACTOR', 'system')
    ONBOARDING_NOTE = 'Auto-generated during school onboarding'

    # Instance path for file saves
    INSTANCE_PATH = os.path.join(BASE_DIR, 'instance')
    BARCODE_DIR = os.path.join(INSTANCE_PATH, 'barcodes')
