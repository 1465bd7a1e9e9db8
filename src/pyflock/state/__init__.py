"""Change bus and reactive bindings.

Every cell bound to a key, in this context or another one, converges on the
last value written for that key.
"""

from pyflock.state.bus import ChangeBus, ChangeCallback, RemoteChannel, StorageAreaChannel
from pyflock.state.cell import ReactiveCell, bind
from pyflock.state.events import ChangeEvent, ChangeOrigin

__all__ = [
    "ChangeBus",
    "ChangeCallback",
    "ChangeEvent",
    "ChangeOrigin",
    "ReactiveCell",
    "RemoteChannel",
    "StorageAreaChannel",
    "bind",
]
