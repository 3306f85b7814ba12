"""Protocol engine: command sequencer, dispatch, discovery and lifecycle."""

from .adapter import ZigbeeAdapter
from .manager import DeviceManager, EventRecorder, TransceiverPort
from .sequencer import Invoke, ResolveProperty, RunLoop, SendFrame, WaitFrame, WaitPredicate
