import logging

logger = logging.getLogger(__name__)


class RoomLifecycleManager:
    """Deletes empty rooms, either after a grace period or by a periodic sweep.

    ``scheduler`` needs ``start_background_task(fn, *args)`` and
    ``sleep(seconds)``; a ``flask_socketio.SocketIO`` instance fits.
    Neither policy keeps its own copy of room state: both re-read the
    registry when they fire.
    """

    def __init__(self, registry, scheduler, grace_period=30, sweep_interval=3600,
                 max_idle=24 * 3600, clock=None):
        self.registry = registry
        self.scheduler = scheduler
        self.grace_period = grace_period
        self.sweep_interval = sweep_interval
        self.max_idle = max_idle
        # Room timestamps come from the registry clock, so compare against it.
        self.clock = clock or registry.clock
        self._sweeping = False

        registry.add_empty_listener(self.schedule_deletion)

    def schedule_deletion(self, room_id):
        logger.debug("Room %s is empty, deleting in %ss unless rejoined", room_id, self.grace_period)
        self.scheduler.start_background_task(self._delete_after_grace, room_id)

    def _delete_after_grace(self, room_id):
        self.scheduler.sleep(self.grace_period)
        self.delete_if_empty(room_id)

    def delete_if_empty(self, room_id):
        """Delete the room if it has been empty for a full grace period."""
        with self.registry.transaction() as registry:
            room = registry.get_room(room_id)
            if room is None or room.members:
                return False
            # Emptied again after a rejoin; the newer timer covers it.
            if self.clock() - room.last_activity < self.grace_period:
                return False
            registry.delete_room(room_id)
            return True

    def sweep(self):
        """Delete rooms that are empty and idle for longer than ``max_idle``."""
        now_ms = self.clock() * 1000
        max_idle_ms = self.max_idle * 1000
        deleted = []
        with self.registry.transaction() as registry:
            for summary in registry.list_rooms():
                if summary['memberCount'] == 0 and now_ms - summary['lastActivity'] > max_idle_ms:
                    registry.delete_room(summary['id'])
                    deleted.append(summary['id'])
        if deleted:
            logger.info("Sweep removed %d stale rooms", len(deleted))
        return deleted

    def start(self):
        if self._sweeping:
            return
        self._sweeping = True
        self.scheduler.start_background_task(self._sweep_loop)

    def stop(self):
        self._sweeping = False

    def _sweep_loop(self):
        logger.info("Room sweep started (every %ss)", self.sweep_interval)
        while self._sweeping:
            self.scheduler.sleep(self.sweep_interval)
            if not self._sweeping:
                break
            try:
                self.sweep()
            except Exception:
                logger.exception("Room sweep failed")
