import struct

import pytest

from teleop import Twist
from vehicle_bridge import (
    CMD_VEL_FORMAT,
    HEARTBEAT_FORMAT,
    VehicleProtocol,
    pack_cmd_vel,
    unpack_cmd_vel,
)


class FakeTransport:
    def __init__(self):
        self.sent = []

    def sendto(self, data, addr):
        self.sent.append((data, addr))


def test_cmd_vel_packet_layout() -> None:
    cmd = Twist(linear_x=0.5, linear_y=-0.25, angular_x=0.125, angular_z=1.0)
    pkt = pack_cmd_vel(cmd, 7)
    assert len(pkt) == struct.calcsize(CMD_VEL_FORMAT)
    header, lx, ly, lz, ax, ay, az, seq = struct.unpack(CMD_VEL_FORMAT, pkt)
    assert header == b'CV'
    assert (lx, ly, lz, ax, ay, az) == (0.5, -0.25, 0.0, 0.125, 0.0, 1.0)
    assert seq == 7
    assert unpack_cmd_vel(pkt) == cmd


def test_unpack_rejects_short_or_foreign_packets() -> None:
    with pytest.raises(ValueError):
        unpack_cmd_vel(b'CV\x00')
    with pytest.raises(ValueError):
        unpack_cmd_vel(b'XX' + bytes(struct.calcsize(CMD_VEL_FORMAT) - 2))


def test_protocol_sends_to_vehicle_with_rolling_seq() -> None:
    proto = VehicleProtocol(('10.0.0.2', 5000))
    transport = FakeTransport()
    proto.connection_made(transport)

    proto.send_cmd_vel(Twist(linear_x=0.5))
    proto.send_heartbeat()

    (cv, addr), (hb, _) = transport.sent
    assert addr == ('10.0.0.2', 5000)
    assert struct.unpack(CMD_VEL_FORMAT, cv)[-1] == 0
    header, _ts, seq = struct.unpack(HEARTBEAT_FORMAT, hb)
    assert header == b'HB'
    assert seq == 1


def test_protocol_without_transport_is_noop() -> None:
    proto = VehicleProtocol(('127.0.0.1', 5000))
    proto.send_cmd_vel(Twist())
    proto.send_heartbeat()


def test_send_error_is_logged_not_raised(caplog) -> None:
    class Broken:
        def sendto(self, data, addr):
            raise OSError('network unreachable')

    proto = VehicleProtocol(('127.0.0.1', 5000))
    proto.connection_made(Broken())
    proto.send_cmd_vel(Twist())
    assert 'network unreachable' in caplog.text
