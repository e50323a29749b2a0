"""Legal-transition tables for the workflow entities."""

from collections.abc import Iterable, Mapping

from app.core.exceptions import IllegalTransitionException


class TransitionTable:
    """
    Immutable map of which statuses may move to which.

    Statuses absent from the table as a source are terminal.
    """

    def __init__(self, entity: str, transitions: Mapping[str, Iterable[str]]):
        self.entity = entity
        self._transitions = {
            source: frozenset(targets) for source, targets in transitions.items()
        }

    def targets(self, from_status: str) -> frozenset[str]:
        """Statuses reachable in one step from ``from_status``."""
        return self._transitions.get(from_status, frozenset())

    def is_legal(self, from_status: str, to_status: str) -> bool:
        return to_status in self.targets(from_status)

    def is_terminal(self, status: str) -> bool:
        return not self.targets(status)

    def ensure(self, from_status: str, to_status: str, action: str | None = None) -> None:
        """
        Check one transition.

        Args:
            from_status: Current status of the entity
            to_status: Requested status
            action: Operation name used in the error message

        Raises:
            IllegalTransitionException: If the pair is not in the table
        """
        if not self.is_legal(from_status, to_status):
            raise IllegalTransitionException(
                self.entity,
                from_status,
                to_status,
                action=action,
            )

    def is_legal_walk(self, statuses: Iterable[str], start: str) -> bool:
        """Return True if ``statuses`` is a chain of legal steps beginning at ``start``."""
        steps = list(statuses)
        if not steps or steps[0] != start:
            return False
        return all(self.is_legal(a, b) for a, b in zip(steps, steps[1:]))
