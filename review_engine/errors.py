"""Exception hierarchy for the review engine.

Validation problems are raised before anything is written. Persistence
problems on the card state are fatal to the calling operation; problems on
the review log are reported by the orchestrator instead of raised.
"""


class ReviewEngineError(Exception):
    """Base class for all review engine errors."""


class ValidationError(ReviewEngineError):
    """Invalid input such as an out-of-range rating or unknown mode."""


class NotFoundError(ReviewEngineError):
    """A referenced user, item or card state does not exist."""


class PersistenceError(ReviewEngineError):
    """A card state write could not be committed."""


class CardStateConflict(PersistenceError):
    """Another writer changed the card state between read and write."""


class OptimizerUnavailableError(ReviewEngineError):
    """The optional FSRS optimizer dependencies are not installed."""
