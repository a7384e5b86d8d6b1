"""State machine for response resolution phases."""

from enum import Enum

import structlog


logger = structlog.get_logger()


class ResolutionPhase(str, Enum):
    """Phase of reducing a raw value to a ``ResponseData``.

    - CLASSIFY: Decide between copy, error path and normal path
    - UNWRAP: Follow ``.response`` nesting (bounded)
    - EXTRACT: Pull status, headers, data, config and url from the layers
    - HEADERS: Normalize headers into a response header store
    - STATUS: Resolve the HTTP status
    - REQUEST: Adopt or synthesize the associated request
    - FINALIZE: Build the canonical response
    - DONE: Successfully resolved
    - FAILED: Resolution failed; an error-shaped response is produced
    """

    CLASSIFY = "CLASSIFY"
    UNWRAP = "UNWRAP"
    EXTRACT = "EXTRACT"
    HEADERS = "HEADERS"
    STATUS = "STATUS"
    REQUEST = "REQUEST"
    FINALIZE = "FINALIZE"
    DONE = "DONE"
    FAILED = "FAILED"


# Valid phase transitions
_VALID_TRANSITIONS: dict[ResolutionPhase, set[ResolutionPhase]] = {
    ResolutionPhase.CLASSIFY: {
        ResolutionPhase.UNWRAP,
        ResolutionPhase.DONE,  # already canonical
        ResolutionPhase.FAILED,
    },
    ResolutionPhase.UNWRAP: {ResolutionPhase.EXTRACT, ResolutionPhase.FAILED},
    ResolutionPhase.EXTRACT: {ResolutionPhase.HEADERS, ResolutionPhase.FAILED},
    ResolutionPhase.HEADERS: {ResolutionPhase.STATUS, ResolutionPhase.FAILED},
    ResolutionPhase.STATUS: {ResolutionPhase.REQUEST, ResolutionPhase.FAILED},
    ResolutionPhase.REQUEST: {ResolutionPhase.FINALIZE, ResolutionPhase.FAILED},
    ResolutionPhase.FINALIZE: {ResolutionPhase.DONE, ResolutionPhase.FAILED},
    ResolutionPhase.DONE: set(),  # Terminal state
    ResolutionPhase.FAILED: set(),  # Terminal state
}


class ResolutionTransitionError(Exception):
    """Raised when an illegal phase transition is attempted."""

    def __init__(self, from_phase: ResolutionPhase, to_phase: ResolutionPhase) -> None:
        """Initialize the transition error.

        Args:
            from_phase: Current phase.
            to_phase: Attempted target phase.
        """
        self.from_phase = from_phase
        self.to_phase = to_phase
        super().__init__(
            f"Illegal resolution transition: {from_phase.value} -> {to_phase.value}"
        )


class ResolutionStateMachine:
    """Tracks the phase of one response resolution and logs each change."""

    def __init__(
        self, initial_phase: ResolutionPhase = ResolutionPhase.CLASSIFY
    ) -> None:
        self._phase = initial_phase
        self._history = [initial_phase]
        self._log = logger.bind(component="response")

    @property
    def phase(self) -> ResolutionPhase:
        """Get the current phase."""
        return self._phase

    @property
    def history(self) -> list[ResolutionPhase]:
        """Phases visited so far, in order."""
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        """Check if the current phase is terminal."""
        return self._phase in (ResolutionPhase.DONE, ResolutionPhase.FAILED)

    def can_transition_to(self, target: ResolutionPhase) -> bool:
        """Check if a transition to the target phase is valid.

        Args:
            target: The target phase.

        Returns:
            True if the transition is valid.
        """
        return target in _VALID_TRANSITIONS.get(self._phase, set())

    def transition_to(self, target: ResolutionPhase) -> None:
        """Move to a new phase.

        Args:
            target: The target phase.

        Raises:
            ResolutionTransitionError: If the transition is invalid.
        """
        if not self.can_transition_to(target):
            self._log.error(
                "illegal_phase_transition",
                from_phase=self._phase.value,
                to_phase=target.value,
            )
            raise ResolutionTransitionError(self._phase, target)

        old_phase = self._phase
        self._phase = target
        self._history.append(target)
        self._log.debug(
            "phase_transition", from_phase=old_phase.value, to_phase=target.value
        )

    def fail(self) -> None:
        """Move to FAILED unless already terminal."""
        if not self.is_terminal:
            self.transition_to(ResolutionPhase.FAILED)
