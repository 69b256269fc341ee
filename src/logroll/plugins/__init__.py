"""
Sink plugins for logroll.

Only file sinks ship with the library; other destinations can implement the
:class:`~logroll.plugins.sinks.BaseSink` protocol.
"""

from .sinks import BaseSink

__all__ = ["BaseSink"]
