import logging
import random
import re
import string

import socketio

from sync import PlaybackSyncEngine

logger = logging.getLogger(__name__)

YOUTUBE_URL_RE = re.compile(r'^.*((youtu\.be/)|(v/)|(/u/\w/)|(embed/)|(watch\?))\??v?=?([^#&?]*).*')
VIDEO_ID_RE = re.compile(r'^[\w-]{11}$')

MIN_ROOM_ID_LENGTH = 3


def generate_user_id(length=9):
    alphabet = string.ascii_lowercase + string.digits
    return 'user_' + ''.join(random.choice(alphabet) for _ in range(length))


def extract_video_id(url):
    """Return the 11 character YouTube id in ``url``, or None."""
    url = (url or '').strip()
    if VIDEO_ID_RE.match(url):
        return url
    match = YOUTUBE_URL_RE.match(url)
    if match and len(match.group(7)) == 11:
        return match.group(7)
    return None


class WatchClient:
    """Socket.IO client for one viewer: room membership, chat and a synced player.

    UI hooks are plain attributes (``on_chat``, ``on_user_joined``,
    ``on_user_left``, ``on_error``, ``on_room_joined``, ``on_room_left``);
    each is called with the event payload when set.
    """

    def __init__(self, player, server_url, display_name='Guest', sio=None, engine=None):
        self.server_url = server_url
        self.display_name = display_name or 'Guest'
        self.user_id = generate_user_id()
        self.current_room = None
        self.member_count = 0

        self.sio = sio or socketio.Client(reconnection=True)
        self.engine = engine or PlaybackSyncEngine(player, self.emit_video_action, user_id=self.user_id)

        self.on_chat = None
        self.on_user_joined = None
        self.on_user_left = None
        self.on_error = None
        self.on_room_joined = None
        self.on_room_left = None

        self.sio.on('room-joined', self._handle_room_joined)
        self.sio.on('room-left', self._handle_room_left)
        self.sio.on('user-joined', self._handle_user_joined)
        self.sio.on('user-left', self._handle_user_left)
        self.sio.on('video-load', self._handle_video_load)
        self.sio.on('video-action', self._handle_video_action)
        self.sio.on('chat-message', self._handle_chat_message)
        self.sio.on('error', self._handle_error)
        self.sio.on('disconnect', self._handle_disconnect)

    @property
    def connected(self):
        return self.sio.connected

    def connect(self, **kwargs):
        logger.info("Connecting to %s", self.server_url)
        self.sio.connect(self.server_url, **kwargs)

    def disconnect(self):
        self.sio.disconnect()

    # Room management

    def create_room(self):
        if not self.connected:
            logger.error("Not connected to server")
            return False
        self.sio.emit('create-room', {'displayName': self.display_name})
        return True

    def join_room(self, room_id):
        if not self.connected:
            logger.error("Not connected to server")
            return False
        room_id = (room_id or '').strip().upper()
        if len(room_id) < MIN_ROOM_ID_LENGTH:
            logger.error("Please enter a valid room ID")
            return False
        self.sio.emit('join-room', {'roomId': room_id, 'displayName': self.display_name})
        return True

    def leave_room(self):
        if not self.current_room:
            return False
        self.sio.emit('leave-room', {'roomId': self.current_room})
        return True

    # Video

    def load_video(self, url):
        if not self.current_room:
            return False
        video_id = extract_video_id(url)
        if video_id is None:
            logger.error("Not a valid YouTube URL: %s", url)
            return False
        if not self.engine.load(video_id):
            return False
        self.sio.emit('video-load', {
            'roomId': self.current_room,
            'videoId': video_id,
            'sourceUrl': url,
            'originatorId': self.user_id,
        })
        return True

    def play(self):
        return self.engine.local_play()

    def pause(self):
        return self.engine.local_pause()

    def seek(self, seconds):
        return self.engine.local_seek(seconds)

    def emit_video_action(self, kind, position_seconds=None):
        if not self.current_room:
            return
        self.sio.emit('video-action', {
            'roomId': self.current_room,
            'kind': kind,
            'positionSeconds': position_seconds,
            'originatorId': self.user_id,
        })

    # Chat

    def send_chat(self, text):
        if not self.current_room or not (text or '').strip():
            return False
        self.sio.emit('chat-message', {
            'roomId': self.current_room,
            'text': text.strip(),
            'displayName': self.display_name,
            'originatorId': self.user_id,
        })
        return True

    def is_own(self, payload):
        return payload.get('originatorId') == self.user_id

    # Inbound events

    def _handle_room_joined(self, data):
        room_id = data.get('roomId')
        if self.current_room and room_id != self.current_room:
            # Moved rooms without a room-left; drop state from the old room.
            self.engine.leave_room()
        self.current_room = room_id
        self.member_count = data.get('memberCount', 0)
        self.engine.enter_room()
        video = data.get('currentVideo')
        if video and video.get('videoId'):
            self.engine.load(video['videoId'])
        logger.info("Joined room %s (%s members)", self.current_room, self.member_count)
        self._notify(self.on_room_joined, data)

    def _handle_room_left(self, data=None):
        logger.info("Left room %s", self.current_room)
        self.current_room = None
        self.member_count = 0
        self.engine.leave_room()
        self._notify(self.on_room_left, data or {})

    def _handle_user_joined(self, data):
        self.member_count = data.get('memberCount', self.member_count)
        self._notify(self.on_user_joined, data)

    def _handle_user_left(self, data):
        self.member_count = data.get('memberCount', self.member_count)
        self._notify(self.on_user_left, data)

    def _handle_video_load(self, data):
        if self.is_own(data):
            return
        self.engine.load(data.get('videoId'))

    def _handle_video_action(self, data):
        if self.is_own(data):
            return
        self.engine.apply_remote(data)

    def _handle_chat_message(self, data):
        self._notify(self.on_chat, data)

    def _handle_error(self, data):
        logger.warning("Server error: %s", (data or {}).get('message'))
        self._notify(self.on_error, data or {})

    def _handle_disconnect(self, *args):
        self.current_room = None
        self.engine.leave_room()

    def _notify(self, callback, data):
        if callback is not None:
            callback(data)
