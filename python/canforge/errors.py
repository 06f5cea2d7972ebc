"""Exceptions raised by the canforge code generator

Every error is fatal for the generation run that raised it and names the
message, signal or filter token it is about.
"""


class CanforgeError(Exception):
    """Base exception for all canforge errors"""


class ModelError(CanforgeError):
    """Malformed input model (duplicate IDs, unreadable database, ...)"""


class LayoutError(CanforgeError):
    """Signal bit range does not fit its message"""


class MultiplexError(CanforgeError):
    """Unsupported or inconsistent multiplexing in a message"""


class FilterError(CanforgeError, ValueError):
    """Unparseable whitelist/blacklist entry"""
