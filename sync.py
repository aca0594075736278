"""Client-side playback synchronization.

A ``PlaybackSyncEngine`` sits between one local player and the room
connection. Local intents (play/pause/seek by this user) go out as
``video-action`` events; remote ``video-action`` events come back in and are
reconciled against the local player with latency compensation.

The engine only changes state from inside player notifications
(``on_player_ready``, ``on_state_change``) or from explicit calls; it never
polls the player.
"""
import abc
import enum
import logging
import time

logger = logging.getLogger(__name__)

DEFAULT_SYNC_THRESHOLD = 1.0


class SyncState(enum.Enum):
    IDLE = 'idle'
    READY = 'ready'
    LOCAL_INTENT_PENDING = 'local-intent-pending'


class PlayerState(enum.IntEnum):
    # Same values as the YouTube IFrame API player states.
    UNSTARTED = -1
    ENDED = 0
    PLAYING = 1
    PAUSED = 2
    BUFFERING = 3
    CUED = 5


class Player(abc.ABC):
    """Interface of the external video player the engine drives."""

    @abc.abstractmethod
    def load(self, video_id):
        raise NotImplementedError

    @abc.abstractmethod
    def play(self):
        raise NotImplementedError

    @abc.abstractmethod
    def pause(self):
        raise NotImplementedError

    @abc.abstractmethod
    def seek(self, seconds):
        raise NotImplementedError

    @abc.abstractmethod
    def position(self):
        raise NotImplementedError

    @abc.abstractmethod
    def duration(self):
        raise NotImplementedError

    @abc.abstractmethod
    def state(self):
        raise NotImplementedError


class PlaybackSyncEngine:
    """Reconciles one local player with the rest of the room.

    ``emit_action(kind, position_seconds)`` is called for every local intent
    that should be relayed. It is never called for a player notification that
    was not preceded by a local command, so remote corrections do not echo
    back into the room.
    """

    def __init__(self, player, emit_action, user_id=None,
                 threshold=DEFAULT_SYNC_THRESHOLD, clock=time.time):
        self.player = player
        self.emit_action = emit_action
        self.user_id = user_id
        self.threshold = threshold
        self.clock = clock

        self.player_ready = False
        self.in_room = False
        self.playback_state = PlayerState.UNSTARTED
        self.last_sync_time = None
        self._state = SyncState.IDLE

    @property
    def state(self):
        return self._state

    @property
    def attached(self):
        return self._state is not SyncState.IDLE

    # Lifecycle

    def on_player_ready(self):
        self.player_ready = True
        self._refresh()
        logger.debug("Player ready (sync state: %s)", self._state.value)

    def enter_room(self):
        self.in_room = True
        self._refresh()

    def leave_room(self):
        self.in_room = False
        self._refresh()

    def _refresh(self):
        if self.player_ready and self.in_room:
            if self._state is SyncState.IDLE:
                self._state = SyncState.READY
        else:
            self._state = SyncState.IDLE

    # Local intents

    def load(self, video_id):
        if not self.player_ready:
            logger.error("Player not ready")
            return False
        self.player.load(video_id)
        return True

    def local_play(self):
        return self._local_command(self.player.play)

    def local_pause(self):
        return self._local_command(self.player.pause)

    def local_seek(self, seconds):
        if not self._local_command(self.player.seek, seconds):
            return False
        # Seeking does not always produce a state change, so relay it now.
        if self.attached:
            self.emit_action('seek', seconds)
        return True

    def _local_command(self, command, *args):
        if not self.player_ready:
            return False
        if self.attached:
            self._state = SyncState.LOCAL_INTENT_PENDING
        command(*args)
        return True

    def on_state_change(self, state):
        """Player notification. Returns the relayed action kind, if any."""
        state = PlayerState(state)
        self.playback_state = state

        if self._state is not SyncState.LOCAL_INTENT_PENDING:
            logger.debug("State change %s not caused by a local intent", state.name)
            return None

        self._state = SyncState.READY
        if state is PlayerState.PLAYING:
            kind = 'play'
        elif state is PlayerState.PAUSED:
            kind = 'pause'
        else:
            return None
        self.emit_action(kind, self.player.position())
        return kind

    # Remote events

    def apply_remote(self, event):
        """Apply a relayed ``video-action`` payload to the local player."""
        if not self.attached:
            return False
        if self.user_id is not None and event.get('originatorId') == self.user_id:
            return False

        # A stale local intent must not claim the notification this correction causes.
        self._state = SyncState.READY

        kind = event.get('kind')
        position = event.get('positionSeconds')
        try:
            if kind == 'play':
                self.sync_play(position, event.get('timestamp'))
            elif kind == 'pause':
                self.sync_pause(position)
            elif kind == 'seek':
                self.sync_seek(position)
            else:
                logger.warning("Unknown video action: %s", kind)
                return False
        except Exception:
            logger.exception("Error applying remote %s", kind)
            return False
        return True

    def sync_play(self, position=None, timestamp=None):
        target = position
        if position is not None and timestamp:
            offset = (self.clock() * 1000 - timestamp) / 1000
            target = position + offset
            logger.debug("Adjusted target time %.3f (offset %.3f)", target, offset)

        if target is not None:
            self._seek_if_drifted(target)
        if self.player.state() != PlayerState.PLAYING:
            self.player.play()
        self.last_sync_time = self.clock()

    def sync_pause(self, position=None):
        # A paused remote timeline has stopped, so no transit compensation.
        if position is not None:
            self._seek_if_drifted(position)
        if self.player.state() != PlayerState.PAUSED:
            self.player.pause()
        self.last_sync_time = self.clock()

    def sync_seek(self, position):
        self.player.seek(position)
        self.last_sync_time = self.clock()

    def _seek_if_drifted(self, target):
        current = self.player.position()
        if abs(current - target) > self.threshold:
            logger.debug("Seeking to %.3f from %.3f", target, current)
            self.player.seek(target)
            return True
        return False
