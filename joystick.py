"""
Joystick input handler.

Polls the first pygame joystick, packs every axis and button into an
InputSample and hands it to the TeleopController. Which axis/button does
what is decided by the teleop parameters, not here.

Config keys (joystick:):
  rate         : poll rate Hz               (default 50)
  device_index : pygame joystick index      (default 0)
"""
import time
import threading
import logging
from typing import Optional

from state import SharedState
from teleop import InputSample, TeleopController

logger = logging.getLogger(__name__)

try:
    import pygame
    _HAS_PYGAME = True
except ImportError:
    _HAS_PYGAME = False
    logger.warning('pygame not installed, joystick disabled')


def read_sample(joy) -> InputSample:
    axes = [joy.get_axis(i) for i in range(joy.get_numaxes())]
    buttons = [joy.get_button(i) for i in range(joy.get_numbuttons())]
    return InputSample.from_lists(axes, buttons)


class JoystickHandler:
    def __init__(self, controller: TeleopController, state: SharedState, cfg: dict):
        self.controller   = controller
        self.state        = state
        self.period       = 1.0 / cfg.get('rate', 50.0)
        self.device_index = cfg.get('device_index', 0)

        self._joystick: Optional[object] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if not _HAS_PYGAME:
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, name='joystick', daemon=True)
        self._thread.start()

    def stop(self):
        self._running = False
        if self._thread:
            self._thread.join(timeout=2.0)

    # ------------------------------------------------------------------

    def _run(self):
        pygame.init()
        pygame.joystick.init()

        while self._running:
            if self._joystick is None:
                self._try_connect()
                if self._joystick is None:
                    time.sleep(1.0)
                continue

            # event.pump() failing means the device is gone
            try:
                pygame.event.pump()
            except pygame.error as e:
                logger.warning(f'Joystick disconnected: {e}')
                self._on_disconnect()
                continue

            if pygame.joystick.get_count() <= self.device_index:
                logger.warning('Joystick disconnected')
                self._on_disconnect()
                continue

            self.controller.process(read_sample(self._joystick))

            time.sleep(self.period)

        pygame.quit()

    def _try_connect(self):
        pygame.joystick.quit()
        pygame.joystick.init()
        if pygame.joystick.get_count() <= self.device_index:
            return

        joy = pygame.joystick.Joystick(self.device_index)
        joy.init()
        self._joystick = joy
        logger.info(f'Joystick connected: {joy.get_name()}')

        self._validate_config(joy)
        self.state.update_joystick_connected(True)

    def _validate_config(self, joy):
        """Runs once per connect. Indices past the device are read as 0 / released."""
        num_axes    = joy.get_numaxes()
        num_buttons = joy.get_numbuttons()
        params      = self.controller.params.as_dict()

        for name, index in sorted(params.items()):
            if not name.startswith('axis_') or index < 0:
                continue
            if index >= num_axes:
                logger.warning(
                    f'{name}={index} out of range '
                    f'(joystick has {num_axes} axes), reads as 0'
                )

        for name in ('enable_button', 'enable_turbo_button', 'enable_autorun_button'):
            index = params[name]
            if index >= num_buttons:
                logger.warning(
                    f'{name}={index} out of range '
                    f'(joystick has {num_buttons} buttons), never pressed'
                )

    def _on_disconnect(self):
        self._joystick = None
        self.state.update_joystick_connected(False)
        # no stick, no cruise: drop autorun and let the empty sample emit the stop
        self.controller.reset()
        self.controller.process(InputSample())
