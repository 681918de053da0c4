"""Process self-management: load sampling and graceful self-restart."""

from policyvault.supervisor.load import get_sampler
from policyvault.supervisor.restart import RestartSupervisor, SupervisorState

__all__ = ["RestartSupervisor", "SupervisorState", "get_sampler"]
