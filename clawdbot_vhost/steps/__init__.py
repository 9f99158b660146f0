from .step_10_install_prerequisites import InstallPrerequisitesStep
from .step_20_configure_firewall import ConfigureFirewallStep
from .step_30_install_application import InstallApplicationStep
from .step_40_configure_application import ConfigureApplicationStep
from .step_50_configure_proxy import ConfigureProxyStep
from .step_60_health_checks import HealthChecksStep
from .step_90_summary import SummaryStep

__all__ = [
    "InstallPrerequisitesStep",
    "ConfigureFirewallStep",
    "InstallApplicationStep",
    "ConfigureApplicationStep",
    "ConfigureProxyStep",
    "HealthChecksStep",
    "SummaryStep",
]
