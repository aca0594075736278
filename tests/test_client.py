import pytest

from client import WatchClient, extract_video_id, generate_user_id
from sync import PlayerState, SyncState


class FakeSio:
    def __init__(self):
        self.handlers = {}
        self.sent = []
        self.connected = True

    def on(self, event, handler):
        self.handlers[event] = handler

    def emit(self, event, data=None):
        self.sent.append((event, data))

    def deliver(self, event, data=None):
        if data is None:
            return self.handlers[event]()
        return self.handlers[event](data)


@pytest.fixture
def sio():
    return FakeSio()


@pytest.fixture
def client(player, sio):
    client = WatchClient(player, 'http://localhost:3000', display_name='Alice', sio=sio)
    client.engine.on_player_ready()
    return client


def joined(client, sio, room_id='PARTY', video=None):
    sio.deliver('room-joined', {'roomId': room_id, 'memberCount': 1, 'currentVideo': video})
    sio.sent.clear()


@pytest.mark.parametrize('url, expected', [
    ('https://www.youtube.com/watch?v=dQw4w9WgXcQ', 'dQw4w9WgXcQ'),
    ('https://youtu.be/dQw4w9WgXcQ', 'dQw4w9WgXcQ'),
    ('https://www.youtube.com/embed/dQw4w9WgXcQ?start=3', 'dQw4w9WgXcQ'),
    ('dQw4w9WgXcQ', 'dQw4w9WgXcQ'),
    ('https://example.com/video.mp4', None),
    ('', None),
])
def test_extract_video_id(url, expected):
    assert extract_video_id(url) == expected


def test_generate_user_id():
    user_id = generate_user_id()
    assert user_id.startswith('user_')
    assert len(user_id) == 14


def test_create_and_join_emit(client, sio):
    assert client.create_room()
    assert client.join_room(' party ')
    assert sio.sent == [
        ('create-room', {'displayName': 'Alice'}),
        ('join-room', {'roomId': 'PARTY', 'displayName': 'Alice'}),
    ]


def test_join_rejects_short_room_id(client, sio):
    assert client.join_room('AB') is False
    assert sio.sent == []


def test_commands_require_connection(client, sio):
    sio.connected = False
    assert client.create_room() is False
    assert client.join_room('PARTY') is False
    assert sio.sent == []


def test_room_joined_loads_current_video(client, sio, player):
    joined(client, sio, video={'videoId': 'abcdefghijk', 'sourceUrl': 'x'})
    assert client.current_room == 'PARTY'
    assert client.engine.attached
    assert player.commands == [('load', 'abcdefghijk')]


def test_load_video_emits(client, sio, player):
    joined(client, sio)
    assert client.load_video('https://youtu.be/abcdefghijk')
    assert player.commands == [('load', 'abcdefghijk')]
    assert sio.sent == [('video-load', {
        'roomId': 'PARTY',
        'videoId': 'abcdefghijk',
        'sourceUrl': 'https://youtu.be/abcdefghijk',
        'originatorId': client.user_id,
    })]


def test_load_video_rejects_bad_url(client, sio):
    joined(client, sio)
    assert client.load_video('not a video') is False
    assert sio.sent == []


def test_local_play_is_relayed(client, sio, player):
    joined(client, sio)
    player.current_position = 8.0
    client.play()
    client.engine.on_state_change(PlayerState.PLAYING)
    assert sio.sent == [('video-action', {
        'roomId': 'PARTY', 'kind': 'play', 'positionSeconds': 8.0, 'originatorId': client.user_id,
    })]


def test_remote_action_drives_player(client, sio, player):
    joined(client, sio)
    sio.deliver('video-action', {'kind': 'seek', 'positionSeconds': 44.0,
                                 'originatorId': 'user_peer', 'timestamp': 0})
    assert player.commands == [('seek', 44.0)]
    assert sio.sent == []


def test_own_events_ignored(client, sio, player):
    joined(client, sio)
    sio.deliver('video-action', {'kind': 'seek', 'positionSeconds': 44.0, 'originatorId': client.user_id})
    sio.deliver('video-load', {'videoId': 'abcdefghijk', 'originatorId': client.user_id})
    assert player.commands == []


def test_remote_video_load(client, sio, player):
    joined(client, sio)
    sio.deliver('video-load', {'videoId': 'abcdefghijk', 'sourceUrl': 'x', 'originatorId': 'user_peer'})
    assert player.commands == [('load', 'abcdefghijk')]


def test_chat_and_presence_callbacks(client, sio):
    joined(client, sio)
    chats, errors = [], []
    client.on_chat = chats.append
    client.on_error = errors.append

    assert client.send_chat('  hello ')
    assert client.send_chat('   ') is False
    sio.deliver('chat-message', {'text': 'hello', 'originatorId': client.user_id})
    sio.deliver('user-joined', {'displayName': 'Bob', 'memberCount': 2})
    sio.deliver('error', {'message': 'Room ID is required'})

    assert sio.sent == [('chat-message', {
        'roomId': 'PARTY', 'text': 'hello', 'displayName': 'Alice', 'originatorId': client.user_id,
    })]
    assert client.is_own(chats[0])
    assert client.member_count == 2
    assert errors == [{'message': 'Room ID is required'}]


def test_room_left_detaches_engine(client, sio):
    joined(client, sio)
    assert client.leave_room()
    assert sio.sent == [('leave-room', {'roomId': 'PARTY'})]

    sio.deliver('room-left')

    assert client.current_room is None
    assert not client.engine.attached
    assert client.leave_room() is False


def test_switching_rooms_resets_engine(client, sio, player):
    joined(client, sio)
    client.play()
    assert client.engine.state is SyncState.LOCAL_INTENT_PENDING

    joined(client, sio, room_id='OTHER')

    assert client.current_room == 'OTHER'
    assert client.engine.state is SyncState.READY
    assert client.engine.on_state_change(PlayerState.PLAYING) is None
    assert sio.sent == []
