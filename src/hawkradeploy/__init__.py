"""
hawkradeploy - Installer and uninstaller for self-hosted Hawkra
"""

__version__ = "1.0.0"

from .errors import DeployError, OperationCancelled
from .installer import Installer
from .uninstaller import Uninstaller

__all__ = ["DeployError", "Installer", "OperationCancelled", "Uninstaller"]
