import pytest

from registry import RoomRegistry
from server import create_app
from sync import Player, PlayerState


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeScheduler:
    """Collects background tasks; ``sleep`` advances the fake clock."""

    def __init__(self, clock):
        self.clock = clock
        self.tasks = []

    def start_background_task(self, target, *args, **kwargs):
        self.tasks.append((target, args, kwargs))

    def sleep(self, seconds):
        self.clock.advance(seconds)

    def run_pending(self):
        tasks, self.tasks = self.tasks, []
        for target, args, kwargs in tasks:
            target(*args, **kwargs)
        return len(tasks)


class RecordingBroadcaster:
    def __init__(self):
        self.calls = []
        self.transport_rooms = {}

    def join(self, sid, room_id):
        self.transport_rooms.setdefault(room_id, set()).add(sid)

    def leave(self, sid, room_id):
        self.transport_rooms.get(room_id, set()).discard(sid)

    def to_sender(self, sid, event, payload=None):
        self.calls.append(('sender', sid, event, payload))

    def to_room_except(self, room_id, sid, event, payload):
        self.calls.append(('room-except', (room_id, sid), event, payload))

    def to_room(self, room_id, event, payload):
        self.calls.append(('room', room_id, event, payload))

    def events(self, name):
        return [call for call in self.calls if call[2] == name]

    def clear(self):
        self.calls = []


class FakePlayer(Player):
    def __init__(self, position=0.0, state=PlayerState.UNSTARTED):
        self.current_position = position
        self.current_state = state
        self.commands = []

    def load(self, video_id):
        self.commands.append(('load', video_id))

    def play(self):
        self.commands.append(('play',))
        self.current_state = PlayerState.PLAYING

    def pause(self):
        self.commands.append(('pause',))
        self.current_state = PlayerState.PAUSED

    def seek(self, seconds):
        self.commands.append(('seek', seconds))
        self.current_position = seconds

    def position(self):
        return self.current_position

    def duration(self):
        return 600.0

    def state(self):
        return self.current_state

    def command_names(self):
        return [command[0] for command in self.commands]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return FakeScheduler(clock)


@pytest.fixture
def registry(clock):
    return RoomRegistry(clock=clock)


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def player():
    return FakePlayer()


@pytest.fixture
def app_and_socketio(registry, scheduler):
    return create_app({'TESTING': True}, registry=registry, scheduler=scheduler)


@pytest.fixture
def app(app_and_socketio):
    return app_and_socketio[0]


@pytest.fixture
def socketio(app_and_socketio):
    return app_and_socketio[1]


@pytest.fixture
def connect(app, socketio):
    clients = []

    def _connect():
        client = socketio.test_client(app)
        clients.append(client)
        return client

    yield _connect
    for client in clients:
        if client.is_connected():
            client.disconnect()
