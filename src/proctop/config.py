"""Runtime configuration for proctop."""

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class MonitorConfig:
    """Timings used by the scheduler, the command executor and the UI."""

    interval: float = 1.0  # Seconds between refreshes
    warmup_delay: float = 0.5  # Between the priming sample and the first published one
    verify_delay: float = 0.2  # Before re-reading a changed priority
    settle_delay: float = 0.5  # Before refreshing after a control action
    shutdown_grace: float = 0.2  # Given to the scheduler on quit
    ui_poll: float = 0.25  # How often the UI drains the event bridge
    start_paused: bool = False
