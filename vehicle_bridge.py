import asyncio
import struct
import time
import logging

from teleop import Twist

logger = logging.getLogger(__name__)


# header, linear xyz, angular xyz (roll, pitch, yaw), seq
CMD_VEL_FORMAT   = '<2sffffffH'
HEARTBEAT_FORMAT = '<2sdH'


def pack_cmd_vel(cmd: Twist, seq: int) -> bytes:
    return struct.pack(CMD_VEL_FORMAT, b'CV',
                       cmd.linear_x, cmd.linear_y, cmd.linear_z,
                       cmd.angular_x, cmd.angular_y, cmd.angular_z,
                       seq)


def unpack_cmd_vel(data: bytes) -> Twist:
    if len(data) < struct.calcsize(CMD_VEL_FORMAT):
        raise ValueError(f'short CV packet: {len(data)} bytes')
    header, lx, ly, lz, ax, ay, az, _seq = struct.unpack(
        CMD_VEL_FORMAT, data[:struct.calcsize(CMD_VEL_FORMAT)])
    if header != b'CV':
        raise ValueError(f'not a CV packet: {header!r}')
    return Twist(lx, ly, lz, ax, ay, az)


class VehicleProtocol(asyncio.DatagramProtocol):
    def __init__(self, vehicle_addr: tuple):
        self.vehicle_addr = vehicle_addr
        self.transport: asyncio.DatagramTransport | None = None
        self._seq = 0

    def connection_made(self, transport):
        self.transport = transport
        logger.info(f'UDP socket ready → vehicle {self.vehicle_addr}')

    def error_received(self, exc):
        logger.warning(f'UDP error: {exc}')

    def _next_seq(self) -> int:
        s = self._seq
        self._seq = (self._seq + 1) % 65536
        return s

    def _sendto(self, pkt: bytes):
        try:
            self.transport.sendto(pkt, self.vehicle_addr)
        except OSError as e:
            logger.warning(f'UDP send: {e}')

    def send_heartbeat(self):
        if not self.transport:
            return
        self._sendto(struct.pack(HEARTBEAT_FORMAT, b'HB', time.time(), self._next_seq()))

    def send_cmd_vel(self, cmd: Twist):
        if not self.transport:
            return
        self._sendto(pack_cmd_vel(cmd, self._next_seq()))


async def run_heartbeat_loop(sender, cfg: dict):
    """Periodic heartbeat so the vehicle can tell a silent stick from a dead link."""
    hb_interval = 1.0 / cfg.get('heartbeat_rate', 5.0)

    while True:
        sender.send_heartbeat()
        await asyncio.sleep(hb_interval)
