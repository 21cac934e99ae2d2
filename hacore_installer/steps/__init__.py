from .host_10_preflight import HostPreflightStep
from .host_20_select_resources import SelectResourcesStep
from .host_30_download_template import DownloadTemplateStep
from .host_40_create_container import CreateContainerStep
from .host_50_start_container import StartContainerStep
from .host_60_run_payload import RunPayloadStep
from .host_90_report import ReportStep
from .step_10_preflight import PreflightStep
from .step_20_install_packages import InstallPackagesStep
from .step_30_service_account import ServiceAccountStep
from .step_40_create_venv import CreateVenvStep
from .step_50_install_homeassistant import InstallHomeAssistantStep
from .step_60_systemd_service import SystemdServiceStep

__all__ = [
    "HostPreflightStep",
    "SelectResourcesStep",
    "DownloadTemplateStep",
    "CreateContainerStep",
    "StartContainerStep",
    "RunPayloadStep",
    "ReportStep",
    "PreflightStep",
    "InstallPackagesStep",
    "ServiceAccountStep",
    "CreateVenvStep",
    "InstallHomeAssistantStep",
    "SystemdServiceStep",
]
