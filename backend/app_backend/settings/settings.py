"""
Base Django settings for the dispatch backend.

Production overrides live in prod.py (``DJANGO_SETTINGS_MODULE=app_backend.settings.prod``).
"""

import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(os.path.join(BASE_DIR, '..', '.env'))

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-dispatch-dev-key")
DEBUG = os.getenv("DJANGO_DEBUG", "True") == "True"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(',')

INSTALLED_APPS = [
    'daphne',
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third party
    'rest_framework',
    'corsheaders',
    'channels',

    # Local apps
    'orders',
    'drivers',
    'realtime',
]

MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'app_backend.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

ASGI_APPLICATION = 'app_backend.asgi.application'

# Database: SQLite for local development, PostgreSQL when DB_NAME is set
if os.getenv("DB_NAME"):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv("DB_NAME"),
            'USER': os.getenv("DB_USER", "postgres"),
            'PASSWORD': os.getenv("DB_PASSWORD", ""),
            'HOST': os.getenv("DB_HOST", "localhost"),
            'PORT': os.getenv("DB_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

# Authentication happens at the edge gateway; the core trusts forwarded identities.
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'UNAUTHENTICATED_USER': None,
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
}

CORS_ALLOW_ALL_ORIGINS = True

# Process-local channel layer; prod.py switches to channels_redis
CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

# Only set when a Redis instance backs the channel layer (checked by /health/)
REDIS_URL = os.getenv("REDIS_URL")

# ---------------------- Dispatch Configuration ----------------------

DISPATCH = {
    # Pricing: price = BASE_FARE + PER_KM_RATE * distance_km
    "BASE_FARE": Decimal(os.getenv("DISPATCH_BASE_FARE", "5000")),
    "PER_KM_RATE": Decimal(os.getenv("DISPATCH_PER_KM_RATE", "2000")),
    "CURRENCY": os.getenv("DISPATCH_CURRENCY", "UZS"),

    # Placeholder distance used until real routing exists
    "PLACEHOLDER_DISTANCE_MIN_KM": float(os.getenv("DISPATCH_DISTANCE_MIN_KM", "1")),
    "PLACEHOLDER_DISTANCE_MAX_KM": float(os.getenv("DISPATCH_DISTANCE_MAX_KM", "20")),
    "DISTANCE_ESTIMATOR": "services.dispatch.pricing.StraightLineDistanceEstimator",

    # External profile collaborator
    "PROFILE_DIRECTORY": "services.profiles.HttpProfileDirectory",
    "RIDER_PROFILE_URL": os.getenv(
        "RIDER_PROFILE_URL", "http://user-service:4002/profiles/{rider_id}"
    ),
    "DRIVER_PROFILE_URL": os.getenv(
        "DRIVER_PROFILE_URL", "http://driver-service:4004/profiles/{driver_id}"
    ),
    "PROFILE_LOOKUP_TIMEOUT": float(os.getenv("PROFILE_LOOKUP_TIMEOUT", "5")),

    # Participant -> session directory (in-memory, process-local)
    "CONNECTION_ROUTER": "realtime.sessions.InMemoryConnectionRouter",
}

# ---------------------- Logging ----------------------

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.getenv("DJANGO_LOG_LEVEL", "INFO"),
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': os.getenv("DJANGO_LOG_LEVEL", "INFO"),
            'propagate': False,
        },
    },
}
