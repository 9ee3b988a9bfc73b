"""capstream: client for the conversational analytics streaming protocol."""

__version__ = "0.1.0"
