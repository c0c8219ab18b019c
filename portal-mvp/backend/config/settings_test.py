import tempfile

from .settings import *  # noqa: F401,F403

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

PORTAL_AUTH_PROVIDER = 'jwt'
PORTAL_FILE_STORAGE = 'local'
PORTAL_BENEFITS_PROVIDER = 'rule_based'
PORTAL_EVENT_BUS = 'in_memory'
PORTAL_NOTIFICATIONS = 'logging'

PORTAL_JWT_SECRET = 'test-secret-key-that-is-long-enough-for-hs256'
PORTAL_LOCAL_STORAGE_ROOT = tempfile.mkdtemp(prefix='portal-test-storage-')

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

CELERY_TASK_ALWAYS_EAGER = True

# portal.* 的日志冒泡到 root，pytest 的 caplog 才能抓到
LOGGING['loggers']['portal'] = {'handlers': [], 'level': LOG_LEVEL, 'propagate': True}  # noqa: F405
