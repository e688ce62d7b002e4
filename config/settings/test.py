# config/settings/test.py

from .base import *

# === TESTS ===

DEBUG = False

SECRET_KEY = 'lanes-test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'lanes-test-cache',
    }
}

SESSION_ENGINE = 'django.contrib.sessions.backends.db'

CHANNEL_LAYERS = {
    'default': {
        'BACKEND': 'channels.layers.InMemoryChannelLayer'
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

STORAGES['staticfiles'] = {
    'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
}

# Tests build their own lists
LANES_DEFAULT_LISTS = []
LANES_PRESENCE_BACKEND = 'memory'

# Keep test output quiet
LOGGING['handlers'] = {'null': {'class': 'logging.NullHandler'}}
LOGGING['root'] = {'handlers': ['null'], 'level': 'WARNING'}
LOGGING['loggers'] = {}
