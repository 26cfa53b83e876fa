"""
Error taxonomy for the momentum engine
"""


class MomentumEngineError(Exception):
    """Base class for all engine errors"""


class TransientFetchError(MomentumEngineError):
    """Network or data failure from an external collaborator (always recoverable)"""


class ConfigurationError(MomentumEngineError):
    """Entry attempt cannot be sized or configured (entry is dropped, engine continues)"""


class InvariantViolation(MomentumEngineError):
    """Programming-level fatal condition: never expected at runtime"""
