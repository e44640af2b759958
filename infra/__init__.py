"""Infrastructure modules for launch-trader"""

from .instance_lock import CycleLease, SingleInstanceLock  # noqa: F401
from .metrics import MetricsRecorder, CycleStats  # noqa: F401
from .state_store import StateStore, create_state_store_from_config  # noqa: F401

__all__ = [
	"CycleLease",
	"SingleInstanceLock",
	"MetricsRecorder",
	"CycleStats",
	"StateStore",
	"create_state_store_from_config",
]
