from .hooks import HookPhase, InstallablePackage, InstallHookRunner
from .installer import InstallReport, Installer

__all__ = [
    "HookPhase",
    "InstallablePackage",
    "InstallHookRunner",
    "InstallReport",
    "Installer",
]
