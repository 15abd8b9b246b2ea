"""
tailcast: stream a growing log file to WebSocket viewers
"""
__version__ = "0.1.0"
