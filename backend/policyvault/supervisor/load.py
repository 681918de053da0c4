"""Host load samplers for the restart supervisor.

``loadavg`` returns the raw one-minute load average. It is compared
directly against the configured threshold even though the threshold reads
like a CPU percentage. ``loadavg_percent`` scales the same sample to a
percentage of total CPU capacity.
"""

from __future__ import annotations

import os
from collections.abc import Callable

LoadSampler = Callable[[], float]


def load_average() -> float:
    """One-minute system load average."""
    return os.getloadavg()[0]


def load_average_percent() -> float:
    """One-minute load average as a percentage of available CPUs."""
    return 100.0 * os.getloadavg()[0] / (os.cpu_count() or 1)


SAMPLERS: dict[str, LoadSampler] = {
    "loadavg": load_average,
    "loadavg_percent": load_average_percent,
}


def get_sampler(name: str) -> LoadSampler:
    """Look up a sampler by its configuration name."""
    try:
        return SAMPLERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown load metric: '{name}'. Supported: {', '.join(sorted(SAMPLERS))}"
        ) from None
