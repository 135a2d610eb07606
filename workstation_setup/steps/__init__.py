from .step_10_preflight import PreflightStep
from .step_20_homebrew import HomebrewStep
from .step_30_install_packages import InstallPackagesStep
from .step_40_install_pipx import InstallPipxStep
from .step_50_install_extensions import InstallExtensionsStep
from .step_60_pull_models import PullModelsStep
from .step_90_summary import SummaryStep

__all__ = [
    "PreflightStep",
    "HomebrewStep",
    "InstallPackagesStep",
    "InstallPipxStep",
    "InstallExtensionsStep",
    "PullModelsStep",
    "SummaryStep",
]
