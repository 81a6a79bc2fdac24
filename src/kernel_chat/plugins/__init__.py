from .math_plugin import MathPlugin
from .time_plugin import TimePlugin

__all__ = ["MathPlugin", "TimePlugin"]
