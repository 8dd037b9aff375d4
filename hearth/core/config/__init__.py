from hearth.core.config.manager import ConfigManager
from hearth.core.config.models import EventsBusConfigFile, HearthConfig, PipelineConfigFile, PrivacyPolicyFile
from hearth.core.config.paths import ConfigFsPaths

__all__ = [
    "ConfigManager",
    "ConfigFsPaths",
    "HearthConfig",
    "PipelineConfigFile",
    "EventsBusConfigFile",
    "PrivacyPolicyFile",
]
