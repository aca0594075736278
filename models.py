import time


def to_millis(seconds):
    return int(seconds * 1000)


class VideoState:
    """The video currently loaded in a room. Replaced wholesale on every load."""

    def __init__(self, video_id, source_url, loaded_by, loaded_at=None):
        self.video_id = video_id
        self.source_url = source_url
        self.loaded_by = loaded_by
        self.loaded_at = loaded_at if loaded_at is not None else time.time()

    def to_dict(self):
        return {
            'videoId': self.video_id,
            'sourceUrl': self.source_url,
            'loadedBy': self.loaded_by,
            'loadedAt': to_millis(self.loaded_at),
        }


class UserSession:
    def __init__(self, display_name, joined_at=None):
        self.display_name = display_name
        self.joined_at = joined_at if joined_at is not None else time.time()


class Room:
    def __init__(self, room_id, now=None):
        now = now if now is not None else time.time()
        self.id = room_id
        self.members = {}  # {sid: UserSession}
        self.current_video = None
        self.created_at = now
        self.last_activity = now

    @property
    def member_count(self):
        return len(self.members)

    def touch(self, now=None):
        self.last_activity = now if now is not None else time.time()

    def summary(self):
        return {
            'id': self.id,
            'memberCount': self.member_count,
            'hasVideo': self.current_video is not None,
            'createdAt': to_millis(self.created_at),
            'lastActivity': to_millis(self.last_activity),
        }

    def current_video_dict(self):
        return self.current_video.to_dict() if self.current_video else None


class ConnectionSession:
    """Per-connection state, kept outside the registry and keyed by sid."""

    DEFAULT_NAME = 'Guest'

    def __init__(self, sid):
        self.sid = sid
        self.current_room_id = None
        self.display_name = self.DEFAULT_NAME

    def set_display_name(self, name):
        self.display_name = (name or '').strip() or self.DEFAULT_NAME
        return self.display_name

    def in_room(self, room_id):
        return self.current_room_id is not None and self.current_room_id == room_id
