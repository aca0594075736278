import logging
import random
import string
import threading
import time
from contextlib import contextmanager

from models import Room

logger = logging.getLogger(__name__)

ROOM_ID_ALPHABET = string.ascii_uppercase + string.digits
ROOM_ID_LENGTH = 8


def generate_room_id(length=ROOM_ID_LENGTH):
    return ''.join(random.choice(ROOM_ID_ALPHABET) for _ in range(length))


class RoomRegistry:
    """Owns every live room, keyed by room id.

    All access goes through one re-entrant lock. Callers that need several
    operations to happen as a unit (check membership, mutate, then broadcast)
    hold ``transaction()`` around them; single calls lock themselves.

    Listeners registered with ``add_empty_listener`` are called with the room
    id whenever ``remove_member`` leaves a room with no members.
    """

    def __init__(self, clock=time.time, id_factory=generate_room_id):
        self._rooms = {}
        self._lock = threading.RLock()
        self._empty_listeners = []
        self.clock = clock
        self.id_factory = id_factory

    @contextmanager
    def transaction(self):
        with self._lock:
            yield self

    def add_empty_listener(self, callback):
        self._empty_listeners.append(callback)

    def __len__(self):
        return len(self._rooms)

    def __contains__(self, room_id):
        return room_id in self._rooms

    def create_room(self, room_id=None):
        with self._lock:
            if room_id is None:
                room_id = self.id_factory()
                while room_id in self._rooms:
                    logger.debug("Room id collision on %s, regenerating", room_id)
                    room_id = self.id_factory()
            elif room_id in self._rooms:
                return self._rooms[room_id]

            room = Room(room_id, now=self.clock())
            self._rooms[room_id] = room
            logger.info("Room created: %s", room_id)
            return room

    def get_room(self, room_id):
        with self._lock:
            return self._rooms.get(room_id)

    def add_member(self, room_id, sid, user_session):
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                return False
            room.members[sid] = user_session
            room.touch(self.clock())
            return True

    def remove_member(self, room_id, sid):
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                return False
            room.members.pop(sid, None)
            room.touch(self.clock())
            if not room.members:
                for callback in self._empty_listeners:
                    callback(room_id)
            return True

    def set_video(self, room_id, video_state):
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                return False
            room.current_video = video_state
            room.touch(self.clock())
            return True

    def delete_room(self, room_id):
        with self._lock:
            room = self._rooms.pop(room_id, None)
            if room is not None:
                logger.info("Room deleted: %s (%d members)", room_id, room.member_count)

    def list_rooms(self):
        with self._lock:
            return [room.summary() for room in self._rooms.values()]
