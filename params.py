"""
Teleop parameters.

Every parameter has a fixed kind (int / double / bool). Updates arrive in
batches (config file, web API) and are applied all-or-nothing: the first
value of the wrong kind rejects the whole batch and nothing changes.

The controller never reads the live store while it works on a sample; it
takes one `snapshot()` per sample instead.

Parameters:
  require_enable_button            : bool   (default True)
  enable_button                    : int    (default 5, -1 = unused)
  enable_turbo_button              : int    (default -1)
  enable_autorun_button            : int    (default -1)
  axis_linear.{x,y,z}              : int    axis index, -1 = unmapped
  axis_angular.{yaw,pitch,roll}    : int
  axis_angular_adjustment.{yaw,pitch,roll} : int  (autorun yaw trim)
  scale_linear[_turbo|_autorun].{x,y,z}          : double
  scale_angular[_turbo|_autorun].{yaw,pitch,roll} : double
"""
import copy
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional

logger = logging.getLogger(__name__)

LINEAR_AXES = ('x', 'y', 'z')
ANGULAR_AXES = ('yaw', 'pitch', 'roll')

# parameter-name suffix per mode
_MODE_SUFFIX = {'normal': '', 'turbo': '_turbo', 'autorun': '_autorun'}

_KIND_NAMES = {int: 'integer', float: 'double', bool: 'boolean'}


def _defaults() -> Dict[str, object]:
    d: Dict[str, object] = {
        'require_enable_button': True,
        'enable_button':         5,
        'enable_turbo_button':   -1,
        'enable_autorun_button': -1,

        'axis_linear.x': 5,
        'axis_linear.y': -1,
        'axis_linear.z': -1,

        'axis_angular.yaw':   2,
        'axis_angular.pitch': -1,
        'axis_angular.roll':  -1,

        'axis_angular_adjustment.yaw':   3,
        'axis_angular_adjustment.pitch': -1,
        'axis_angular_adjustment.roll':  -1,
    }
    for mode, suffix in _MODE_SUFFIX.items():
        full = 0.5 if mode == 'normal' else 1.0
        d[f'scale_linear{suffix}.x'] = full
        d[f'scale_linear{suffix}.y'] = 0.0
        d[f'scale_linear{suffix}.z'] = 0.0
        d[f'scale_angular{suffix}.yaw']   = full
        d[f'scale_angular{suffix}.pitch'] = 0.0
        d[f'scale_angular{suffix}.roll']  = 0.0
    return d


DEFAULTS = _defaults()

# kind per parameter, taken from the default value
KINDS = {name: type(value) for name, value in DEFAULTS.items()}


class ParameterError(ValueError):
    """Raised when a parameter batch is rejected outside the web API."""


@dataclass
class SetParametersResult:
    successful: bool = True
    reason:     str  = ''


@dataclass(frozen=True)
class TeleopConfig:
    """Immutable view of the parameters, one per processed sample."""
    require_enable_button: bool = True
    enable_button:         int  = 5
    enable_turbo_button:   int  = -1
    enable_autorun_button: int  = -1
    axis_linear:             Dict[str, int] = field(default_factory=dict)
    axis_angular:            Dict[str, int] = field(default_factory=dict)
    axis_angular_adjustment: Dict[str, int] = field(default_factory=dict)
    # mode -> axis name -> scale
    scale_linear:  Dict[str, Dict[str, float]] = field(default_factory=dict)
    scale_angular: Dict[str, Dict[str, float]] = field(default_factory=dict)

    @classmethod
    def from_flat(cls, values: Dict[str, object]) -> 'TeleopConfig':
        def group(prefix: str, names) -> dict:
            return {n: values[f'{prefix}.{n}'] for n in names}

        return cls(
            require_enable_button=values['require_enable_button'],
            enable_button=values['enable_button'],
            enable_turbo_button=values['enable_turbo_button'],
            enable_autorun_button=values['enable_autorun_button'],
            axis_linear=group('axis_linear', LINEAR_AXES),
            axis_angular=group('axis_angular', ANGULAR_AXES),
            axis_angular_adjustment=group('axis_angular_adjustment', ANGULAR_AXES),
            scale_linear={
                mode: group(f'scale_linear{suffix}', LINEAR_AXES)
                for mode, suffix in _MODE_SUFFIX.items()
            },
            scale_angular={
                mode: group(f'scale_angular{suffix}', ANGULAR_AXES)
                for mode, suffix in _MODE_SUFFIX.items()
            },
        )


def _kind_ok(value, kind) -> bool:
    # bool is a subclass of int, so compare exact types
    return type(value) is kind


def validate(updates: Dict[str, object]) -> SetParametersResult:
    for name, value in updates.items():
        kind = KINDS.get(name)
        if kind is None:
            return SetParametersResult(False, f"Unknown parameter '{name}'.")
        if not _kind_ok(value, kind):
            return SetParametersResult(
                False, f"Only {_KIND_NAMES[kind]} values can be set for '{name}'.")
    return SetParametersResult()


def flatten(section: dict, prefix: str = '') -> Dict[str, object]:
    """{'axis_linear': {'x': 1}} and {'axis_linear.x': 1} both -> {'axis_linear.x': 1}"""
    flat: Dict[str, object] = {}
    for k, v in (section or {}).items():
        key = f'{prefix}.{k}' if prefix else str(k)
        if isinstance(v, dict):
            flat.update(flatten(v, key))
        else:
            flat[key] = v
    return flat


class ParameterStore:
    def __init__(self, overrides: Optional[Dict[str, object]] = None):
        self._values = dict(DEFAULTS)
        self._lock = threading.Lock()
        self._listeners: list = []
        if overrides:
            result = self.set_parameters(overrides)
            if not result.successful:
                raise ParameterError(result.reason)

    def set_parameters(self, updates: Dict[str, object]) -> SetParametersResult:
        result = validate(updates)
        if not result.successful:
            logger.warning(result.reason)
            return result

        with self._lock:
            self._values.update(updates)
        if updates:
            logger.info(f'Parameters updated: {", ".join(sorted(updates))}')
        for cb in self._listeners[:]:
            cb(dict(updates))
        return result

    def get(self, name: str):
        with self._lock:
            return self._values[name]

    def as_dict(self) -> Dict[str, object]:
        with self._lock:
            return dict(self._values)

    def snapshot(self) -> TeleopConfig:
        with self._lock:
            values = copy.deepcopy(self._values)
        return TeleopConfig.from_flat(values)

    def add_listener(self, cb):
        self._listeners.append(cb)


def log_config(cfg: TeleopConfig):
    """Startup summary of the active button/axis mapping."""
    turbo = cfg.enable_turbo_button >= 0

    if cfg.require_enable_button:
        logger.info(f'Teleop enable button {cfg.enable_button}.')
    if turbo:
        logger.info(f'Turbo on button {cfg.enable_turbo_button}.')
    if cfg.enable_autorun_button >= 0:
        logger.info(f'Autorun toggle on button {cfg.enable_autorun_button}.')

    for kind, axes, scales in (('Linear',  cfg.axis_linear,  cfg.scale_linear),
                               ('Angular', cfg.axis_angular, cfg.scale_angular)):
        for name, index in sorted(axes.items()):
            if index == -1:
                continue
            logger.info(f'{kind} axis {name} on {index} at scale {scales["normal"][name]:f}.')
            if turbo:
                logger.info(f'Turbo for {kind.lower()} axis {name} is scale '
                            f'{scales["turbo"][name]:f}.')
