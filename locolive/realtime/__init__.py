from locolive.realtime.connection import LiveConnection
from locolive.realtime.dispatcher import FanoutDispatcher
from locolive.realtime.registry import ConnectionRegistry

__all__ = ["ConnectionRegistry", "FanoutDispatcher", "LiveConnection"]
