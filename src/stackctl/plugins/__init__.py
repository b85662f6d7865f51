"""Extension layer — plugin system via pluggy.

Discovery: entry_points (pip-installed) via pluggy setuptools entrypoints.
INVARIANT: Lifecycle hook failures are warnings, never errors.
"""

from stackctl.plugins.manager import PluginManager
from stackctl.plugins.readiness import ReadinessProbe, runtime_state_probe, tcp_probe

__all__ = ["PluginManager", "ReadinessProbe", "runtime_state_probe", "tcp_probe"]
