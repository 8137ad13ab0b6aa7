"""
Lifecycle state machine of a StarknetNode

The decision function is pure: it maps the observed status and children
to the next status value. Writing that value is left to the caller.
"""

from dataclasses import dataclass
from enum import Enum


class Phase(str, Enum):
    """Phases reported in ``status.phase``"""

    PENDING = 'Pending'
    DOWNLOADING_SNAPSHOT = 'DownloadingSnapshot'
    SNAPSHOT_DOWNLOADED = 'SnapshotDownloaded'
    # Reserved for head tracking, never produced by decide()
    CATCHING_UP = 'CatchingUp'
    READY = 'Ready'
    FAILED = 'Failed'


@dataclass(frozen=True)
class Observation:
    """What a reconciliation pass has seen so far"""
    phase: Phase
    snapshot_configured: bool
    snapshot_restored: bool
    job_complete: bool = False

    @property
    def restore_needed(self) -> bool:
        return self.snapshot_configured and not self.snapshot_restored


@dataclass(frozen=True)
class Decision:
    """Status to write, and whether the node pod may be provisioned"""
    phase: Phase
    snapshot_restored: bool
    provision_pod: bool

    @property
    def latched(self) -> bool:
        return self.phase is Phase.SNAPSHOT_DOWNLOADED


def decide(observation: Observation) -> Decision:
    """
    Decide the next status of a node

    Transitions:
    - restore needed, job running        -> DownloadingSnapshot
    - restore needed, job complete       -> SnapshotDownloaded (latches the
      restore flag), only from DownloadingSnapshot
    - no restore needed                  -> Pending, pod may be provisioned

    A phase never advances by more than one step per pass, and the restore
    flag is never cleared.
    """
    if not observation.restore_needed:
        return Decision(
            phase=Phase.PENDING,
            snapshot_restored=observation.snapshot_restored,
            provision_pod=True,
        )

    if observation.job_complete and observation.phase is Phase.DOWNLOADING_SNAPSHOT:
        return Decision(
            phase=Phase.SNAPSHOT_DOWNLOADED,
            snapshot_restored=True,
            provision_pod=False,
        )

    return Decision(
        phase=Phase.DOWNLOADING_SNAPSHOT,
        snapshot_restored=observation.snapshot_restored,
        provision_pod=False,
    )
