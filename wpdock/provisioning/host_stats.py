"""Collect CPU and RAM utilization from the site host."""

import logging
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)

CPU_USAGE_CMD = "top -bn1 | grep '%Cpu(s)' | awk '{print $2 + $4}'"
RAM_USAGE_CMD = "free -m | grep Mem | awk '{print $3/$2 * 100.0}'"


@dataclass
class HostStats:
    """Utilization percentages, 0-100."""

    cpu_usage: float
    ram_usage: float

    def to_dict(self) -> dict:
        return asdict(self)


def _parse_percent(output, label):
    text = output.strip()
    try:
        return round(float(text), 2)
    except ValueError:
        raise ValueError(f"Unexpected {label} usage output: {text!r}") from None


async def collect_host_stats(session) -> HostStats:
    """Sample CPU (user + system) and used-memory percentages.

    Raises CommandError if either probe fails and ValueError on output
    that is not a number.
    """
    cpu_out, _ = await session.run(CPU_USAGE_CMD, timeout=30)
    ram_out, _ = await session.run(RAM_USAGE_CMD, timeout=30)
    stats = HostStats(
        cpu_usage=_parse_percent(cpu_out, "CPU"),
        ram_usage=_parse_percent(ram_out, "RAM"),
    )
    logger.debug(f"Host stats: cpu={stats.cpu_usage}% ram={stats.ram_usage}%")
    return stats
