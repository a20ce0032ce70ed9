"""
Serial port enumeration for device discovery.

USB serial adapters are enumerated with pyserial. Fixed paths such as udev
symlinks (``/dev/xl2``) or the on-board UART are not always reported by
``comports()``, so preferred paths that exist are added as well. The result
is ordered so preferred ports are probed first, in preference order.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import serial.tools.list_ports

from ..logging_utils import get_module_logger

logger = get_module_logger("SerialPorts")


@dataclass(frozen=True)
class SerialPortInfo:
    """An enumerated serial port."""
    device: str
    description: Optional[str] = None
    vid: Optional[int] = None
    pid: Optional[int] = None
    serial_number: Optional[str] = None

    @property
    def usb_id(self) -> Optional[str]:
        if self.vid is None or self.pid is None:
            return None
        return f"{self.vid:04x}:{self.pid:04x}"


def order_ports(ports: Iterable[str], preferred: Sequence[str] = ()) -> List[str]:
    """Order ``ports`` with preferred ones first, then the rest sorted.

    Duplicates are removed; the first occurrence wins.
    """
    unique: List[str] = []
    for port in ports:
        if port not in unique:
            unique.append(port)

    rank = {port: index for index, port in enumerate(preferred)}
    head = sorted((p for p in unique if p in rank), key=rank.__getitem__)
    tail = sorted(p for p in unique if p not in rank)
    return head + tail


async def list_serial_ports(preferred: Sequence[str] = ()) -> List[SerialPortInfo]:
    """Enumerate serial ports, preferred paths first."""
    try:
        # comports() blocks on sysfs reads
        raw_ports = await asyncio.to_thread(serial.tools.list_ports.comports)
    except Exception as exc:
        logger.error("Serial port enumeration failed: %s", exc)
        raw_ports = []

    found = {
        info.device: SerialPortInfo(
            device=info.device,
            description=info.description,
            vid=info.vid,
            pid=info.pid,
            serial_number=info.serial_number,
        )
        for info in raw_ports
    }

    for path in preferred:
        if path not in found and Path(path).exists():
            found[path] = SerialPortInfo(device=path, description="fixed path")

    ordered = order_ports(found.keys(), preferred)
    logger.debug("Enumerated %d serial port(s)", len(ordered))
    return [found[port] for port in ordered]


__all__ = ["SerialPortInfo", "list_serial_ports", "order_ports"]
