
from .settings import *

DEBUG = False
SECRET_KEY = "test-secret-key"

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"
CELERY_TASK_ALWAYS_EAGER = False

TRANSPORT_OFFER_TIMEOUT_SECONDS = 3600
TRANSPORT_OFFER_EXPIRY_WARNING_SECONDS = 0
TRANSPORT_STORE_MAX_RETRIES = 1
TRANSPORT_NOTIFICATION_GATEWAY = "services.dispatch.gateways.LoggingNotificationGateway"

LOG_LEVEL = "WARNING"
LOGGING['root']['level'] = LOG_LEVEL
LOGGING['loggers']['services.dispatch']['level'] = LOG_LEVEL
