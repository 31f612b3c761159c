from earlysleep.workers.tasks.friendship_sweep import run_friendship_sweep
from earlysleep.workers.tasks.goodnight_reactions import run_goodnight_reactions_consume
from earlysleep.workers.tasks.slot_rollup import run_slot_rollup

__all__ = [
    "run_friendship_sweep",
    "run_goodnight_reactions_consume",
    "run_slot_rollup",
]
