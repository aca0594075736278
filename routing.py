import logging
import threading
import time
from numbers import Real

from models import ConnectionSession, UserSession, VideoState, to_millis

logger = logging.getLogger(__name__)

VIDEO_ACTION_KINDS = ('play', 'pause', 'seek')


class SessionTable:
    """Side table of ConnectionSession objects keyed by Socket.IO sid."""

    def __init__(self):
        self._sessions = {}
        self._lock = threading.Lock()

    def open(self, sid):
        with self._lock:
            session = self._sessions.get(sid)
            if session is None:
                session = self._sessions[sid] = ConnectionSession(sid)
            return session

    def get(self, sid):
        with self._lock:
            return self._sessions.get(sid)

    def close(self, sid):
        with self._lock:
            return self._sessions.pop(sid, None)

    def __len__(self):
        return len(self._sessions)


class BroadcastRouter:
    """Addressing policy on top of the Socket.IO room primitive.

    Room ids are used directly as Socket.IO room names.
    """

    def __init__(self, socketio, namespace='/'):
        self.socketio = socketio
        self.namespace = namespace

    def join(self, sid, room_id):
        self.socketio.server.enter_room(sid, room_id, namespace=self.namespace)

    def leave(self, sid, room_id):
        self.socketio.server.leave_room(sid, room_id, namespace=self.namespace)

    def to_sender(self, sid, event, payload=None):
        self._emit(event, payload, to=sid)

    def to_room_except(self, room_id, sid, event, payload):
        self._emit(event, payload, to=room_id, skip_sid=sid)

    def to_room(self, room_id, event, payload):
        self._emit(event, payload, to=room_id)

    def _emit(self, event, payload, **kwargs):
        args = () if payload is None else (payload,)
        self.socketio.emit(event, *args, namespace=self.namespace, **kwargs)


class EventRouter:
    """Validates inbound events and turns them into registry mutations and broadcasts.

    Each handler takes the sender's ConnectionSession and the raw payload.
    ``dispatch`` runs a handler inside ``registry.transaction()`` so one event
    is applied completely before another touches the registry, and turns any
    unexpected exception into an ``error`` reply to the sender.
    """

    FAILURE_MESSAGES = {
        'create-room': 'Failed to create room',
        'join-room': 'Failed to join room',
        'leave-room': 'Failed to leave room',
        'video-load': 'Failed to load video',
        'video-action': 'Failed to handle video action',
        'chat-message': 'Failed to send message',
    }

    def __init__(self, registry, broadcaster, clock=time.time):
        self.registry = registry
        self.broadcaster = broadcaster
        self.clock = clock
        self.handlers = {
            'create-room': self.create_room,
            'join-room': self.join_room,
            'leave-room': self.leave_room,
            'video-load': self.video_load,
            'video-action': self.video_action,
            'chat-message': self.chat_message,
        }

    def dispatch(self, event, session, data=None):
        handler = self.handlers[event]
        if not isinstance(data, dict):
            data = {}
        try:
            with self.registry.transaction():
                handler(session, data)
        except Exception:
            logger.exception("Error handling %s from %s", event, session.sid)
            self._error(session, self.FAILURE_MESSAGES[event])

    def create_room(self, session, data):
        self._detach(session, acknowledge=False)
        session.set_display_name(data.get('displayName'))

        room = self.registry.create_room()
        self._enter(session, room)
        logger.info("%s created and joined room: %s", session.display_name, room.id)

    def join_room(self, session, data):
        room_id = data.get('roomId')
        if not isinstance(room_id, str) or not room_id.strip():
            self._error(session, 'Room ID is required')
            return
        room_id = room_id.strip()

        if session.current_room_id != room_id:
            self._detach(session, acknowledge=False)
        session.set_display_name(data.get('displayName'))

        room = self.registry.create_room(room_id)
        self._enter(session, room)
        self.broadcaster.to_room_except(room.id, session.sid, 'user-joined', {
            'displayName': session.display_name,
            'memberCount': room.member_count,
        })
        logger.info("%s joined room: %s", session.display_name, room.id)

    def leave_room(self, session, data):
        self._detach(session, acknowledge=True)

    def disconnect(self, session):
        """Drop the connection's membership. Never raises."""
        try:
            with self.registry.transaction():
                self._detach(session, acknowledge=False, transport=False)
        except Exception:
            logger.exception("Error handling disconnect of %s", session.sid)

    def video_load(self, session, data):
        room_id = data.get('roomId')
        if not self._is_member(session, room_id, 'video-load'):
            return
        video_id = data.get('videoId')
        if not video_id:
            self._error(session, 'Video ID is required')
            return

        video = VideoState(video_id, data.get('sourceUrl'), session.display_name, loaded_at=self.clock())
        if not self.registry.set_video(room_id, video):
            return
        self.broadcaster.to_room_except(room_id, session.sid, 'video-load', {
            'videoId': video.video_id,
            'sourceUrl': video.source_url,
            'originatorId': data.get('originatorId'),
            'loadedBy': video.loaded_by,
        })
        logger.info("Video loaded in %s: %s by %s", room_id, video_id, session.display_name)

    def video_action(self, session, data):
        room_id = data.get('roomId')
        if not self._is_member(session, room_id, 'video-action'):
            return
        kind = data.get('kind')
        if kind not in VIDEO_ACTION_KINDS:
            self._error(session, 'Invalid video action')
            return
        position = data.get('positionSeconds')
        if (position is None and kind == 'seek') or not _valid_position(position):
            self._error(session, 'Invalid position')
            return

        # Relay only: play state is never stored on the room.
        self.broadcaster.to_room_except(room_id, session.sid, 'video-action', {
            'kind': kind,
            'positionSeconds': position,
            'originatorId': data.get('originatorId'),
            'timestamp': to_millis(self.clock()),
        })
        logger.debug("Video action in %s: %s at %ss by %s", room_id, kind, position, session.display_name)

    def chat_message(self, session, data):
        room_id = data.get('roomId')
        if not self._is_member(session, room_id, 'chat-message'):
            return
        text = data.get('text')
        if not isinstance(text, str) or not text.strip():
            self._error(session, 'Message is required')
            return

        # Echoed to the sender too, so every client renders the same order.
        self.broadcaster.to_room(room_id, 'chat-message', {
            'text': text.strip(),
            'displayName': data.get('displayName') or session.display_name,
            'originatorId': data.get('originatorId'),
            'timestamp': to_millis(self.clock()),
        })
        logger.debug("Chat message in %s by %s", room_id, session.display_name)

    def _enter(self, session, room):
        self.registry.add_member(room.id, session.sid, UserSession(session.display_name, joined_at=self.clock()))
        self.broadcaster.join(session.sid, room.id)
        session.current_room_id = room.id
        self.broadcaster.to_sender(session.sid, 'room-joined', {
            'roomId': room.id,
            'memberCount': room.member_count,
            'currentVideo': room.current_video_dict(),
        })

    def _detach(self, session, acknowledge, transport=True):
        room_id = session.current_room_id
        if room_id is None:
            return

        if transport:
            self.broadcaster.leave(session.sid, room_id)
        self.registry.remove_member(room_id, session.sid)
        session.current_room_id = None
        room = self.registry.get_room(room_id)

        if acknowledge:
            self.broadcaster.to_sender(session.sid, 'room-left')
        if room is not None and room.members:
            self.broadcaster.to_room_except(room_id, session.sid, 'user-left', {
                'displayName': session.display_name,
                'memberCount': room.member_count,
            })
        logger.info("%s left room: %s", session.display_name, room_id)

    def _is_member(self, session, room_id, event):
        if session.in_room(room_id):
            return True
        logger.debug("Dropping %s from %s for room %s (current room: %s)",
                     event, session.sid, room_id, session.current_room_id)
        return False

    def _error(self, session, message):
        self.broadcaster.to_sender(session.sid, 'error', {'message': message})


def _valid_position(value):
    if value is None:
        return True
    return isinstance(value, Real) and not isinstance(value, bool) and value >= 0
