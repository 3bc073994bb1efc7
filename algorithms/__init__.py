from .calendar_tools import CalendarTools
from .volume_tools import VolumeTools

__all__ = ["CalendarTools", "VolumeTools"]
