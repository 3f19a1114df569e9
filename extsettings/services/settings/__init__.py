"""Settings service package.

Typed setting definitions (schema), the validation rules engine (validator),
the defaults loader (config_loader), export/import and the settings store
(manager).
"""

from .schema import ConfigStrategy, ManagerState, Setting, EXPORT_FORMAT_VERSION
from .validator import ValidateResult, check, validate, validate_all, validate_integer, validate_text_secure
from .config_loader import ConfigurationLoader, ConfigurationSource, validate_configuration
from .export_import import ImportReport, export_settings, parse_import
from .manager import SettingsManager

__all__ = [
    "Setting",
    "ConfigStrategy",
    "ManagerState",
    "EXPORT_FORMAT_VERSION",
    "ValidateResult",
    "check",
    "validate",
    "validate_all",
    "validate_integer",
    "validate_text_secure",
    "ConfigurationLoader",
    "ConfigurationSource",
    "validate_configuration",
    "ImportReport",
    "export_settings",
    "parse_import",
    "SettingsManager",
]
