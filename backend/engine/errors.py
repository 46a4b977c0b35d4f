"""Error taxonomy for the practice engine.

Errors carry a stable ``code`` and a transport-independent ``kind``:

- gate: the run is missing, ended or expired; the caller must refetch or rejoin
- not_found: client and server disagree about a player or card
- conflict: concurrent writes could not be reconciled within the retry budget
- invalid: the request can never succeed as issued (e.g. unpublished deck)
"""


class EngineError(Exception):
    """Base class for all practice engine errors."""

    code = "ENGINE_ERROR"
    kind = "invalid"
    message = "Practice engine error."

    def __init__(self, message: str | None = None) -> None:
        """Initialize with an optional message overriding the class default."""
        self.message = message or self.message
        super().__init__(self.message)


class RunNotFound(EngineError):
    code = "RUN_NOT_FOUND"
    kind = "gate"
    message = "Run not found."


class RunInactive(EngineError):
    code = "RUN_INACTIVE"
    kind = "gate"
    message = "Run is no longer active."


class RunExpired(EngineError):
    code = "RUN_EXPIRED"
    kind = "gate"
    message = "Run has expired."


class PlayerNotInRun(EngineError):
    code = "PLAYER_NOT_IN_RUN"
    kind = "not_found"
    message = "Player not found in this run."


class PlayerNotFound(EngineError):
    code = "PLAYER_NOT_FOUND"
    kind = "not_found"
    message = "Player not found."


class StateNotFound(EngineError):
    code = "STATE_NOT_FOUND"
    kind = "not_found"
    message = "Card state not found for player."


class DeckNotFound(EngineError):
    code = "DECK_NOT_FOUND"
    kind = "not_found"
    message = "Deck not found."


class DeckNotPublished(EngineError):
    code = "DECK_NOT_PUBLISHED"
    message = "Deck must be published before starting a run."


class DeckEmpty(EngineError):
    code = "DECK_EMPTY"
    message = "Deck requires at least one card."


class RunCodeUnavailable(EngineError):
    code = "RUN_CODE_UNAVAILABLE"
    kind = "conflict"
    message = "Unable to generate a unique run code."


class ConcurrencyConflict(EngineError):
    code = "CONCURRENCY_CONFLICT"
    kind = "conflict"
    message = "Failed to record answer."


class StaleStateError(ConcurrencyConflict):
    """A save was based on a state version that has since changed. Retryable."""

    code = "STALE_STATE"
    message = "Card state changed during update."
