#!/usr/bin/env python3
import argparse
import asyncio
import logging
from pathlib import Path

import yaml
import uvicorn

from params import ParameterStore, ParameterError, flatten, log_config
from state import SharedState
from teleop import TeleopController
from joystick import JoystickHandler
from station_client import StationClient
from vehicle_bridge import VehicleProtocol, run_heartbeat_loop
from web.server import create_app

logger = logging.getLogger('main')


def load_config(path: str, overrides: dict) -> dict:
    cfg = {}
    p = Path(path)
    if p.exists():
        cfg = yaml.safe_load(p.read_text()) or {}
    cfg.update({k: v for k, v in overrides.items() if v is not None})
    return cfg


def make_sender(cfg: dict):
    kind = cfg.get('transport', 'udp')
    if kind == 'zenoh':
        return StationClient()
    if kind == 'udp':
        return VehicleProtocol((cfg.get('vehicle_ip', '127.0.0.1'),
                                cfg.get('vehicle_port', 5000)))
    raise ValueError(f'unknown transport: {kind}')


async def run(cfg: dict):
    web_port = cfg.get('web_port', 8080)

    params = ParameterStore(flatten(cfg.get('teleop', {})))
    log_config(params.snapshot())
    params.add_listener(lambda _updates: log_config(params.snapshot()))

    state = SharedState()
    loop = asyncio.get_running_loop()
    state.set_loop(loop)

    controller = TeleopController(params, on_step=state.update_teleop)

    sender = make_sender(cfg)
    transport = None
    if cfg.get('transport', 'udp') == 'zenoh':
        sender.start(cfg.get('zenoh_locator', ''))
        controller.set_publisher(sender.send_cmd_vel)
        if cfg.get('remote_joy', False):
            sender.subscribe_joy(controller.process)
    else:
        transport, _ = await loop.create_datagram_endpoint(
            lambda: sender,
            local_addr=('0.0.0.0', cfg.get('rx_port', 5001)),
        )
        # asyncio transports are not thread-safe; hop onto the loop
        controller.set_publisher(
            lambda cmd: loop.call_soon_threadsafe(sender.send_cmd_vel, cmd))
        logger.info(f'UDP  vehicle={sender.vehicle_addr}')

    # remote_joy: samples come over zenoh instead of a local stick
    joystick = JoystickHandler(controller, state, cfg.get('joystick', {}))
    if not cfg.get('remote_joy', False):
        joystick.start()

    app = create_app(state, params)
    uv_cfg = uvicorn.Config(
        app,
        host='0.0.0.0',
        port=web_port,
        log_level='warning',
        loop='none',
    )
    server = uvicorn.Server(uv_cfg)
    logger.info(f'Web  http://0.0.0.0:{web_port}')

    try:
        await asyncio.gather(
            run_heartbeat_loop(sender, cfg),
            server.serve(),
        )
    finally:
        joystick.stop()
        if transport is not None:
            transport.close()
        else:
            sender.stop()
        logger.info('Shutdown complete')


def main():
    parser = argparse.ArgumentParser(description='Joystick teleop')
    parser.add_argument('--config',       default='config.yaml')
    parser.add_argument('--transport',    choices=('udp', 'zenoh'), default=None)
    parser.add_argument('--vehicle-ip',   default=None)
    parser.add_argument('--vehicle-port', type=int, default=None)
    parser.add_argument('--rx-port',      type=int, default=None)
    parser.add_argument('--web-port',     type=int, default=None)
    parser.add_argument('--log-level',    default='INFO')
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s  %(levelname)-7s  %(name)s: %(message)s',
        datefmt='%H:%M:%S',
    )

    cfg = load_config(args.config, {
        'transport':    args.transport,
        'vehicle_ip':   args.vehicle_ip,
        'vehicle_port': args.vehicle_port,
        'rx_port':      args.rx_port,
        'web_port':     args.web_port,
    })

    try:
        asyncio.run(run(cfg))
    except ParameterError as e:
        logger.error(f'Bad teleop parameters in {args.config}: {e}')
        raise SystemExit(2)
    except KeyboardInterrupt:
        logger.info('Stopped by user')


if __name__ == '__main__':
    main()
