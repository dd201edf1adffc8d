from .base import ConciergeError


class EventBusError(ConciergeError):
    """
    Critical failure in the event distribution system.

    Used when an event type is not an EventTypes member.
    """

    pass
