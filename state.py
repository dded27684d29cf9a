import asyncio
import json
import time
import dataclasses
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class ControlStatus:
    mode:               str   = 'disabled'   # disabled | normal | turbo | autorun
    autorun_active:     bool  = False
    ramp_speed_x:       float = 0.0
    stop_sent:          bool  = False
    joystick_connected: bool  = False


@dataclass
class CommandValues:
    linear_x:  float = 0.0
    linear_y:  float = 0.0
    linear_z:  float = 0.0
    angular_x: float = 0.0   # roll
    angular_y: float = 0.0   # pitch
    angular_z: float = 0.0   # yaw


@dataclass
class PublishStats:
    published:    int   = 0
    stops:        int   = 0
    last_publish: float = 0.0   # monotonic


@dataclass
class Alert:
    level:   str = 'ok'
    message: str = ''


class SharedState:
    """What the web UI sees. Written by the controller thread, read by the event loop."""

    def __init__(self, broadcast_interval: float = 0.05):
        self.control = ControlStatus()
        self.command = CommandValues()
        self.stats   = PublishStats()
        self.alerts: List[Alert] = []

        self._subscribers: list = []
        self._loop = None
        self._broadcast_interval = broadcast_interval
        self._last_broadcast = 0.0

    def set_loop(self, loop):
        self._loop = loop

    def update_teleop(self, ctrl_state, cmd: Optional[object]):
        """TeleopController on_step hook. May run outside the event loop thread."""
        self.control.mode           = ctrl_state.mode.value
        self.control.autorun_active = ctrl_state.autorun_active
        self.control.ramp_speed_x   = ctrl_state.ramp_speed_x
        self.control.stop_sent      = ctrl_state.stop_sent

        if cmd is not None:
            self.command = CommandValues(**dataclasses.asdict(cmd))
            self.stats.published += 1
            self.stats.last_publish = time.monotonic()
            if cmd.is_zero() and ctrl_state.stop_sent:
                self.stats.stops += 1

        self._schedule_broadcast()

    def update_joystick_connected(self, connected: bool):
        self.control.joystick_connected = connected
        self._schedule_broadcast(force=True)

    def _schedule_broadcast(self, force: bool = False):
        now = time.monotonic()
        if not force and now - self._last_broadcast < self._broadcast_interval:
            return
        self._last_broadcast = now
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._broadcast_sync)
        else:
            self._broadcast_sync()

    def _validate(self):
        alerts: List[Alert] = []

        # Autorun keeps driving without a stick
        if self.control.autorun_active and not self.control.joystick_connected:
            alerts.append(Alert('error', 'Autorun active but joystick disconnected!'))

        # Enabled but nothing has gone out for a while
        if self.control.mode != 'disabled' and self.stats.last_publish > 0:
            age = time.monotonic() - self.stats.last_publish
            if age > 1.0:
                alerts.append(Alert('warn', f'No command published for {age:.1f}s'))

        if self.control.mode == 'disabled' and self.control.joystick_connected:
            alerts.append(Alert('ok', 'Teleop disabled, hold the enable button'))

        self.alerts = alerts

    def _broadcast_sync(self):
        self._validate()
        data = self.to_json()
        for q in self._subscribers[:]:
            try:
                q.put_nowait(data)
            except asyncio.QueueFull:
                pass

    def add_subscriber(self, q):
        self._subscribers.append(q)

    def remove_subscriber(self, q):
        try:
            self._subscribers.remove(q)
        except ValueError:
            pass

    def to_json(self) -> str:
        def _d(obj):
            return dataclasses.asdict(obj)

        return json.dumps({
            'control':     _d(self.control),
            'command':     _d(self.command),
            'stats':       _d(self.stats),
            'alerts':      [_d(a) for a in self.alerts],
            'server_time': time.time(),
        })
