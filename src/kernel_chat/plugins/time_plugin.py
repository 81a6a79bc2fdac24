from datetime import datetime, timedelta, timezone

from ..tool_registry import ToolDescriptor


class TimePlugin:
    """Plugin that tells the model the current date and time."""

    def __init__(self, timezone_offset=None, timezone_name=None, clock=datetime.now):
        """Initialize time plugin with timezone settings.

        Parameters
        ----------
        timezone_offset : int, optional
            Minutes offset from UTC, as reported by a browser's
            getTimezoneOffset (default: None, the machine's local time)
        timezone_name : str, optional
            Timezone name for display (default: the local zone's name)
        clock : callable, optional
            Returns the current datetime for a given tzinfo
        """
        if timezone_offset is None:
            self.timezone = None
        else:
            self.timezone = timezone(-timedelta(minutes=timezone_offset))
        self.timezone_name = timezone_name
        self.clock = clock

    def format_timestamp(self) -> str:
        """Format timestamp with timezone adjustment."""
        dt = self.clock(self.timezone)
        if dt.tzinfo is None:
            dt = dt.astimezone()
        name = self.timezone_name or dt.tzname()
        return dt.strftime(f"%Y-%m-%d %H:%M:%S {name}")

    def get_current_date_time(self) -> str:
        """Get the current date and time"""
        return self.format_timestamp()

    def hook_provide_tools(self):
        return [ToolDescriptor.from_callable(self.get_current_date_time, "GetCurrentDateTime")]

    def hook_provide_system_prompt(self):
        return "Call GetCurrentDateTime whenever the answer depends on today's date or the time."
