from .accounts_api import AccountsApi
from .proxy_api import ProxyApi
from .monitor_api import MonitorApi
from .system_api import SystemApi

__all__ = ["AccountsApi", "ProxyApi", "MonitorApi", "SystemApi"]
