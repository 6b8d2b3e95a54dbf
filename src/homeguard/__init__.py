"""HomeGuard Core - sensor correlation, incident lifecycle and notification"""

__version__ = "1.0.0"
