# Vendor connectors
from eventpoll.vendors.abnormal_security import (
    AbnormalSecurityConfig,
    abnormal_security_config_from_settings,
    new_abnormal_security_adapter,
)
from eventpoll.vendors.darktrace import (
    DarktraceConfig,
    darktrace_config_from_settings,
    new_darktrace_adapter,
)

__all__ = [
    "AbnormalSecurityConfig",
    "DarktraceConfig",
    "abnormal_security_config_from_settings",
    "darktrace_config_from_settings",
    "new_abnormal_security_adapter",
    "new_darktrace_adapter",
]
