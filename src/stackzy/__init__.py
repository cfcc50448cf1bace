"""stackzy - find out which libraries an Android app is built with."""

__version__ = "0.1.0"
