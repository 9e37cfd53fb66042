from core.config import ConfigManager
from core.controller import SelectionController
from providers.base import FeedBackend
from providers.local import LocalBackend


def get_backend(config_manager: ConfigManager) -> FeedBackend:
    return LocalBackend(config_manager.config, config_manager=config_manager)


def build_controller(config_manager: ConfigManager, backend: FeedBackend = None,
                     alert=None, confirm=None) -> SelectionController:
    """Create the one coordinator for this process with all of its collaborators."""
    backend = backend or get_backend(config_manager)
    return SelectionController(backend, config_manager, alert=alert, confirm=confirm)
