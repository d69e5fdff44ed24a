"""Error types the chat core raises to its callers."""


class BusyError(RuntimeError):
    """A send (or session switch) was attempted while a reply is in flight."""


class PersistenceError(RuntimeError):
    """The session medium could not be read, decoded or written."""


class InvalidMessageError(ValueError):
    """A user turn failed input validation before anything was mutated."""
