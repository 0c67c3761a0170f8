class InvariantViolation(RuntimeError):
    """
    Raised when the engine is driven into an inconsistent event:
    a stale timer firing, a response against a closed trial,
    an illegal state transition, and so on.
    """
