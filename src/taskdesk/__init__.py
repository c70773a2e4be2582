"""taskdesk: chat bot for team task tracking with reminders."""

__version__ = "0.1.0"
