"""
Host information tool for Toolgate.

get_system_info reports the operating system, CPU, memory and mounted disks.
It reads only; nothing it returns is written anywhere.
"""

import platform

import psutil

from toolgate.schema import PredictedEffects
from toolgate.tools.base import Tool, ToolArguments, ToolContext, ToolOutput


def _disks() -> list[dict]:
    disks = []
    for partition in psutil.disk_partitions(all=False):
        try:
            usage = psutil.disk_usage(partition.mountpoint)
        except (PermissionError, OSError):
            # Unreadable or vanished mounts (empty drives, stale network shares)
            continue
        disks.append({
            "mount_point": partition.mountpoint,
            "device": partition.device,
            "filesystem": partition.fstype,
            "total_bytes": usage.total,
            "available_bytes": usage.free,
        })
    return disks


class SystemInfoTool(Tool):
    """
    Report host information.

    Returns a dict with os_name, os_version, hostname, cpu_count,
    cpu_percent, memory_total_bytes, memory_available_bytes and disks.
    """

    name = "get_system_info"
    description = "Get information about the host system"

    class Arguments(ToolArguments):
        pass

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        return PredictedEffects(summary="Read host system information")

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        memory = psutil.virtual_memory()
        return ToolOutput.ok({
            "os_name": platform.system(),
            "os_version": platform.release(),
            "hostname": platform.node(),
            "cpu_count": psutil.cpu_count(),
            "cpu_percent": psutil.cpu_percent(interval=0.1),
            "memory_total_bytes": memory.total,
            "memory_available_bytes": memory.available,
            "disks": _disks(),
        })
