# flowbot/core/plugins/__init__.py
"""
Plugin system -- feature modules contributing commands and flows.

Canonical imports:
    from flowbot.core.plugins import BasePlugin, PluginHost
"""
from flowbot.core.plugins.base import BasePlugin, Plugin, plugin_shape_errors  # noqa: F401
from flowbot.core.plugins.host import PluginHost, PluginLoadError  # noqa: F401
