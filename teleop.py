"""
Joystick sample -> velocity command.

One call of `step()` per joystick sample:

  1. autorun toggle edge-detect (rising edge on enable_autorun_button)
  2. mode resolution, highest priority first:
       autorun  : toggle latched on
       turbo    : enable_turbo_button held
       normal   : enable_button held, or require_enable_button off
       disabled : otherwise
  3. command build with that mode's scale tables
       autorun  : forward speed is a ramped accumulator, yaw = axis + trim axis
       disabled : a single all-zero command, then nothing until re-enabled

Axis convention for Twist: angular_x = roll, angular_y = pitch, angular_z = yaw.
"""
import logging
import math
import struct
import threading
from dataclasses import dataclass, replace, asdict
from enum import Enum
from typing import Callable, Dict, Optional, Sequence, Tuple

from params import ParameterStore, TeleopConfig

logger = logging.getLogger(__name__)

_F32 = struct.Struct('<f')


def _finite(value) -> float:
    """NaN and inf read as a centred axis."""
    value = float(value)
    return value if math.isfinite(value) else 0.0


@dataclass(frozen=True)
class InputSample:
    axes:    Tuple[float, ...] = ()
    buttons: Tuple[int, ...]   = ()

    @classmethod
    def from_lists(cls, axes: Sequence[float], buttons: Sequence[int]) -> 'InputSample':
        return cls(tuple(_finite(a) for a in axes), tuple(int(b) for b in buttons))


@dataclass
class Twist:
    linear_x:  float = 0.0
    linear_y:  float = 0.0
    linear_z:  float = 0.0
    angular_x: float = 0.0   # roll
    angular_y: float = 0.0   # pitch
    angular_z: float = 0.0   # yaw

    def is_zero(self) -> bool:
        return not any(asdict(self).values())

    def to_dict(self) -> dict:
        return {
            'linear':  {'x': self.linear_x,  'y': self.linear_y,  'z': self.linear_z},
            'angular': {'x': self.angular_x, 'y': self.angular_y, 'z': self.angular_z},
        }


class Mode(Enum):
    DISABLED = 'disabled'
    NORMAL   = 'normal'
    TURBO    = 'turbo'
    AUTORUN  = 'autorun'


@dataclass(frozen=True)
class ControllerState:
    autorun_active:      bool  = False
    autorun_button_prev: int   = 0
    ramp_speed_x:        float = 0.0
    stop_sent:           bool  = False
    mode:                Mode  = Mode.DISABLED   # resolved for the last sample


# ----------------------------------------------------------------------
# Sample reading
# ----------------------------------------------------------------------

def read_axis(sample: InputSample, axis_map: Dict[str, int],
              scale_map: Dict[str, float], name: str) -> float:
    """Scaled value of logical axis `name`, 0.0 if unmapped or not in the sample."""
    index = axis_map.get(name, -1)
    if index < 0 or name not in scale_map or len(sample.axes) <= index:
        return 0.0
    return sample.axes[index] * scale_map[name]


def button_pressed(sample: InputSample, index: int) -> bool:
    return 0 <= index < len(sample.buttons) and bool(sample.buttons[index])


# ----------------------------------------------------------------------
# Mode selection
# ----------------------------------------------------------------------

def update_autorun(state: ControllerState, sample: InputSample,
                   cfg: TeleopConfig) -> ControllerState:
    index = cfg.enable_autorun_button
    if 0 <= index < len(sample.buttons):
        value = sample.buttons[index]
        active = state.autorun_active
        # any increase counts as an edge, analog values included
        if value - state.autorun_button_prev > 0:
            active = not active
            logger.info(f'Autorun → {active}')
        state = replace(state, autorun_active=active, autorun_button_prev=value)

    if not state.autorun_active:
        state = replace(state, ramp_speed_x=0.0)
    return state


def _autorun_latched(state, sample, cfg) -> bool:
    return state.autorun_active


def _turbo_held(state, sample, cfg) -> bool:
    return button_pressed(sample, cfg.enable_turbo_button)


def _enabled(state, sample, cfg) -> bool:
    return not cfg.require_enable_button or button_pressed(sample, cfg.enable_button)


# Evaluated in order; the first rule that holds wins.
MODE_RULES: Tuple[Tuple[Mode, Callable], ...] = (
    (Mode.AUTORUN, _autorun_latched),
    (Mode.TURBO,   _turbo_held),
    (Mode.NORMAL,  _enabled),
)


def resolve_mode(state: ControllerState, sample: InputSample, cfg: TeleopConfig) -> Mode:
    for mode, rule in MODE_RULES:
        if rule(state, sample, cfg):
            return mode
    return Mode.DISABLED


# ----------------------------------------------------------------------
# Autorun ramp
# ----------------------------------------------------------------------

def _f32(value: float) -> float:
    try:
        return _F32.unpack(_F32.pack(value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _clamp(value: float, limit: float) -> float:
    if value > limit:
        return limit
    if value < -limit:
        return -limit
    return value


@dataclass(frozen=True)
class AutorunRamp:
    """
    Cruise-control style forward speed.

    A stick deflection nudges a persistent speed target by a tenth of its
    value per sample instead of setting the speed directly. Yaw is not
    integrated: primary + trim axis, clamped.
    """
    x_limit:   float = 1.0
    yaw_limit: float = 1.0

    @classmethod
    def from_config(cls, cfg: TeleopConfig) -> 'AutorunRamp':
        return cls(
            x_limit=abs(cfg.scale_linear['autorun'].get('x', 0.0)) * 1.0,
            yaw_limit=abs(cfg.scale_angular['autorun'].get('yaw', 0.0)) * 1.0,
        )

    def advance(self, ramp_speed_x: float, dx: float) -> float:
        if not math.isfinite(dx):
            dx = 0.0
        # single precision, same as the float32 fields on the wire
        total = _f32(ramp_speed_x + _f32(dx / 10.0))
        return _clamp(total, self.x_limit)

    def steer(self, yaw_primary: float, yaw_adjust: float) -> float:
        total = yaw_primary + yaw_adjust
        if not math.isfinite(total):
            return 0.0
        return _clamp(total, self.yaw_limit)


# ----------------------------------------------------------------------
# Command building
# ----------------------------------------------------------------------

def build_command(sample: InputSample, mode: Mode, state: ControllerState,
                  cfg: TeleopConfig) -> Tuple[Optional[Twist], ControllerState]:
    if mode is Mode.DISABLED:
        if state.stop_sent:
            return None, state
        return Twist(), replace(state, stop_sent=True)

    linear = cfg.scale_linear[mode.value]
    angular = cfg.scale_angular[mode.value]

    def lin(name):
        return read_axis(sample, cfg.axis_linear, linear, name)

    def ang(name):
        return read_axis(sample, cfg.axis_angular, angular, name)

    cmd = Twist(
        linear_x=lin('x'),
        linear_y=lin('y'),
        linear_z=lin('z'),
        angular_x=ang('roll'),
        angular_y=ang('pitch'),
        angular_z=ang('yaw'),
    )

    if mode is Mode.AUTORUN:
        ramp = AutorunRamp.from_config(cfg)
        speed = ramp.advance(state.ramp_speed_x, cmd.linear_x)
        yaw_adjust = read_axis(sample, cfg.axis_angular_adjustment, angular, 'yaw')
        cmd.linear_x = speed
        cmd.angular_z = ramp.steer(cmd.angular_z, yaw_adjust)
        state = replace(state, ramp_speed_x=speed)

    return cmd, replace(state, stop_sent=False)


def step(state: ControllerState, sample: InputSample,
         cfg: TeleopConfig) -> Tuple[ControllerState, Optional[Twist]]:
    """(state, sample, config) -> (new state, command or None)"""
    state = update_autorun(state, sample, cfg)
    mode = resolve_mode(state, sample, cfg)
    cmd, state = build_command(sample, mode, state, cfg)
    return replace(state, mode=mode), cmd


# ----------------------------------------------------------------------

class TeleopController:
    """
    Owns the ControllerState and drives `step()` for one input source.

    publish : called with every emitted Twist
    on_step : called after every sample with (state, cmd-or-None)
    """

    def __init__(self, params: ParameterStore,
                 publish: Optional[Callable[[Twist], None]] = None,
                 on_step: Optional[Callable[[ControllerState, Optional[Twist]], None]] = None):
        self.params = params
        self._publish = publish
        self._on_step = on_step
        self._state = ControllerState()
        self._lock = threading.Lock()

    @property
    def state(self) -> ControllerState:
        return self._state

    def set_publisher(self, publish: Callable[[Twist], None]):
        self._publish = publish

    def process(self, sample: InputSample) -> Optional[Twist]:
        cfg = self.params.snapshot()
        with self._lock:
            prev_mode = self._state.mode
            self._state, cmd = step(self._state, sample, cfg)
            state = self._state

        if state.mode is not prev_mode:
            logger.info(f'Mode {prev_mode.value} → {state.mode.value}')
        if cmd is not None and self._publish is not None:
            self._publish(cmd)
        if self._on_step is not None:
            self._on_step(state, cmd)
        return cmd

    def reset(self):
        """
        Drop autorun and the ramp. stop_sent is kept so no duplicate stop goes
        out, and the last autorun button value is kept so a button still held
        on reconnect is not read as a new press.
        """
        with self._lock:
            self._state = ControllerState(
                autorun_button_prev=self._state.autorun_button_prev,
                stop_sent=self._state.stop_sent,
                mode=self._state.mode,
            )
