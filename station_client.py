"""
Zenoh transport for the teleop controller.

Topics:
  teleop/cmd_vel    → velocity command (on every emitted command)
  teleop/heartbeat  → keepalive (heartbeat_rate Hz)
  teleop/joy        ← remote joystick samples {"axes": [...], "buttons": [...]}
"""
import json
import logging
import time
from typing import Callable, Optional

import zenoh

from teleop import InputSample, Twist

logger = logging.getLogger(__name__)

KEY_CMD_VEL   = 'teleop/cmd_vel'
KEY_HEARTBEAT = 'teleop/heartbeat'
KEY_JOY       = 'teleop/joy'


def parse_joy(payload: bytes) -> InputSample:
    data = json.loads(payload)
    return InputSample.from_lists(data.get('axes', []), data.get('buttons', []))


def cmd_vel_payload(cmd: Twist, seq: int) -> dict:
    data = cmd.to_dict()
    for group in data.values():
        for k, v in group.items():
            group[k] = round(v, 3)
    data['seq'] = seq
    return data


class StationClient:
    def __init__(self):
        self._session = None
        self._pubs: dict = {}
        self._subs: list = []
        self._seq = 0

    def start(self, locator: str = '') -> None:
        conf = zenoh.Config()
        if locator:
            conf.insert_json5('connect/endpoints', json.dumps([locator]))
        self._session = zenoh.open(conf)

        for key in (KEY_CMD_VEL, KEY_HEARTBEAT):
            self._pubs[key] = self._session.declare_publisher(key)

        logger.info(f'StationClient started → {locator or "auto-discovery"}')

    def stop(self) -> None:
        for sub in self._subs:
            sub.undeclare()
        for pub in self._pubs.values():
            pub.undeclare()
        if self._session:
            self._session.close()

    def subscribe_joy(self, on_sample: Callable[[InputSample], Optional[Twist]]) -> None:
        def _listener(zsample):
            try:
                sample = parse_joy(zsample.payload.to_bytes())
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f'bad joy sample: {e}')
                return
            on_sample(sample)

        self._subs.append(self._session.declare_subscriber(KEY_JOY, _listener))
        logger.info(f'Listening for joystick samples on {KEY_JOY}')

    # ── Publish helpers ───────────────────────────────────────────────────────

    def _next_seq(self) -> int:
        s = self._seq
        self._seq = (self._seq + 1) % 65536
        return s

    def _zput(self, key: str, data: dict) -> None:
        try:
            self._pubs[key].put(json.dumps(data))
        except Exception as e:
            logger.warning(f'zenoh put [{key}]: {e}')

    def send_heartbeat(self):
        self._zput(KEY_HEARTBEAT, {'ts': time.time(), 'seq': self._next_seq()})

    def send_cmd_vel(self, cmd: Twist):
        self._zput(KEY_CMD_VEL, cmd_vel_payload(cmd, self._next_seq()))
