from enum import Enum
from dataclasses import dataclass


class FlushTrigger(str, Enum):
    PAUSE = "pause"                      # explicit user pause
    FOCUS_LOST = "focus_lost"            # no document focused
    IDLE = "idle"                        # idle watchdog expired
    AUTOSAVE = "autosave"                # periodic tick while active
    DOCUMENT_SWITCH = "document_switch"  # another document opened
    DOCUMENT_CLOSE = "document_close"
    TEARDOWN = "teardown"                # process shutting down


@dataclass(frozen=True)
class FlushPolicy:
    pause_first: bool      # move the recorder to Paused before cutting the chunk
    ends_session: bool     # drop the live session once the chunk is cut
    waits_in_flight: bool  # wait for an in-flight finalize instead of coalescing
    reason: str


class FlushRouter:
    """Maps a flush trigger to what the coordinator does around the finalize."""

    def route(self, trigger: FlushTrigger) -> FlushPolicy:
        if trigger in (FlushTrigger.PAUSE, FlushTrigger.FOCUS_LOST, FlushTrigger.IDLE):
            return FlushPolicy(
                pause_first=True,
                ends_session=False,
                waits_in_flight=False,
                reason="Reading paused; session kept for a later finalize.",
            )

        if trigger in (FlushTrigger.DOCUMENT_SWITCH, FlushTrigger.DOCUMENT_CLOSE, FlushTrigger.TEARDOWN):
            return FlushPolicy(
                pause_first=False,
                ends_session=True,
                waits_in_flight=True,
                reason="Session is ending; remaining time must be flushed.",
            )

        # AUTOSAVE: persist what we have and keep reading
        return FlushPolicy(
            pause_first=False,
            ends_session=False,
            waits_in_flight=False,
            reason="Periodic save while reading continues.",
        )
