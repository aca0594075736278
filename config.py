import os


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'watch-together-dev-key')

    HOST = os.environ.get('HOST', '0.0.0.0')
    PORT = int(os.environ.get('PORT', 3000))

    # Socket.IO transport
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'threading')
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '*')
    PING_TIMEOUT = int(os.environ.get('PING_TIMEOUT', 60))
    PING_INTERVAL = int(os.environ.get('PING_INTERVAL', 25))
    ENGINEIO_LOGGER = _env_bool('ENGINEIO_LOGGER')

    # Room lifecycle, all in seconds
    ROOM_GRACE_PERIOD = float(os.environ.get('ROOM_GRACE_PERIOD', 30))
    ROOM_SWEEP_INTERVAL = float(os.environ.get('ROOM_SWEEP_INTERVAL', 60 * 60))
    ROOM_MAX_IDLE = float(os.environ.get('ROOM_MAX_IDLE', 24 * 60 * 60))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
