"""Race ``burned_register`` for a hotkey, one owned block at a time."""

__version__ = "0.2.0"
