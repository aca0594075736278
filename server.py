import logging
import threading
import time

from flask import Flask, jsonify, request
from flask_socketio import SocketIO

from config import Config
from lifecycle import RoomLifecycleManager
from registry import RoomRegistry
from routing import BroadcastRouter, EventRouter, SessionTable

logger = logging.getLogger(__name__)

ROOM_EVENTS = ('create-room', 'join-room', 'leave-room', 'video-load', 'video-action', 'chat-message')


def create_app(config=None, registry=None, scheduler=None):
    """Build the Flask app and its Socket.IO server.

    Returns ``(app, socketio)``. Shared objects are kept in
    ``app.extensions['watch_together']``.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    socketio = SocketIO(
        app,
        async_mode=app.config['SOCKETIO_ASYNC_MODE'],
        cors_allowed_origins=app.config['CORS_ALLOWED_ORIGINS'],
        ping_timeout=app.config['PING_TIMEOUT'],
        ping_interval=app.config['PING_INTERVAL'],
        engineio_logger=app.config['ENGINEIO_LOGGER'],
    )

    registry = registry if registry is not None else RoomRegistry()
    sessions = SessionTable()
    router = EventRouter(registry, BroadcastRouter(socketio))
    lifecycle = RoomLifecycleManager(
        registry,
        scheduler or socketio,
        grace_period=app.config['ROOM_GRACE_PERIOD'],
        sweep_interval=app.config['ROOM_SWEEP_INTERVAL'],
        max_idle=app.config['ROOM_MAX_IDLE'],
    )
    app.extensions['watch_together'] = {
        'registry': registry,
        'sessions': sessions,
        'router': router,
        'lifecycle': lifecycle,
        'started_at': time.time(),
    }

    register_socket_handlers(socketio, sessions, router)
    register_routes(app, socketio)
    return app, socketio


def register_socket_handlers(socketio, sessions, router):
    def handle_connect(auth=None):
        sessions.open(request.sid)
        logger.info("User connected: %s (total: %d)", request.sid, len(sessions))

    def handle_disconnect(reason=None):
        session = sessions.close(request.sid)
        logger.info("User disconnected: %s (%s)", request.sid, reason)
        if session is not None:
            router.disconnect(session)

    socketio.on_event('connect', handle_connect)
    socketio.on_event('disconnect', handle_disconnect)

    for event in ROOM_EVENTS:
        socketio.on_event(event, _make_room_handler(event, sessions, router))

    @socketio.on_error_default
    def default_error_handler(e):
        logger.error("Unhandled Socket.IO error from %s", getattr(request, 'sid', None), exc_info=e)


def _make_room_handler(event, sessions, router):
    def handler(data=None):
        router.dispatch(event, sessions.open(request.sid), data)
    handler.__name__ = 'handle_' + event.replace('-', '_')
    return handler


def register_routes(app, socketio):
    state = app.extensions['watch_together']
    registry = state['registry']

    @app.route('/api/rooms')
    def list_rooms():
        rooms = registry.list_rooms()
        return jsonify({'rooms': rooms, 'totalRooms': len(rooms)})

    @app.route('/api/room/<room_id>')
    def get_room(room_id):
        with registry.transaction():
            room = registry.get_room(room_id)
            if room is None:
                return jsonify({'error': 'Room not found'}), 404
            body = room.summary()
            body['currentVideo'] = room.current_video_dict()
        return jsonify(body)

    @app.route('/api/health')
    def health():
        now = time.time()
        return jsonify({
            'status': 'healthy',
            'timestamp': int(now * 1000),
            'uptime': now - state['started_at'],
            'rooms': len(registry),
            'totalConnections': len(state['sessions']),
        })


def _log_thread_exception(args):
    logger.error("Uncaught exception in thread %s", args.thread.name if args.thread else None,
                 exc_info=(args.exc_type, args.exc_value, args.exc_traceback))


def main():
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    threading.excepthook = _log_thread_exception

    app, socketio = create_app()
    app.extensions['watch_together']['lifecycle'].start()

    host, port = app.config['HOST'], app.config['PORT']
    logger.info("Watch Together server running on %s:%s", host, port)
    socketio.run(app, host=host, port=port, allow_unsafe_werkzeug=True)


if __name__ == '__main__':
    main()
