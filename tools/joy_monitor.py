#!/usr/bin/env python3
"""
Console joystick monitor.

Runs the teleop controller against the first joystick and prints the raw
sample next to the resolved mode and command, so axis/button indices for
config.yaml can be checked by hand. Nothing is sent anywhere.

  python tools/joy_monitor.py [--config config.yaml]   (after pip install -e .)
"""
import argparse
import logging
import sys
import time
from pathlib import Path

import pygame
import yaml

from joystick import read_sample
from params import ParameterStore, flatten, log_config
from teleop import TeleopController


def fmt_row(sample, state, cmd) -> str:
    axes = ' '.join(f'{i}:{v:+.2f}' for i, v in enumerate(sample.axes))
    pressed = ','.join(str(i) for i, b in enumerate(sample.buttons) if b) or '-'
    out = '(held)' if cmd is None else (
        f'lin=({cmd.linear_x:+.2f},{cmd.linear_y:+.2f},{cmd.linear_z:+.2f}) '
        f'ang=({cmd.angular_x:+.2f},{cmd.angular_y:+.2f},{cmd.angular_z:+.2f})'
    )
    return f'[{state.mode.value:8s}] axes {axes} | btn {pressed} | {out}'


def main():
    parser = argparse.ArgumentParser(description='Joystick teleop monitor')
    parser.add_argument('--config', default='config.yaml')
    parser.add_argument('--rate',   type=float, default=10.0)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(levelname)-7s  %(name)s: %(message)s')

    cfg = {}
    p = Path(args.config)
    if p.exists():
        cfg = yaml.safe_load(p.read_text()) or {}
    params = ParameterStore(flatten(cfg.get('teleop', {})))
    log_config(params.snapshot())
    controller = TeleopController(params)

    pygame.init()
    pygame.joystick.init()
    if pygame.joystick.get_count() == 0:
        print('No joystick detected')
        return 1

    joy = pygame.joystick.Joystick(0)
    joy.init()
    print(f'{joy.get_name()}: {joy.get_numaxes()} axes, {joy.get_numbuttons()} buttons')

    try:
        while True:
            pygame.event.pump()
            sample = read_sample(joy)
            cmd = controller.process(sample)
            print(fmt_row(sample, controller.state, cmd))
            time.sleep(1.0 / args.rate)
    except KeyboardInterrupt:
        pass
    finally:
        pygame.quit()
    return 0


if __name__ == '__main__':
    sys.exit(main())
