"""Domain errors raised by the scheduling core and its stores."""


class MedReminderError(Exception):
    """Base class for errors raised by this package."""


class PushNotConfiguredError(MedReminderError):
    """VAPID credentials are missing, so no push can be signed."""


class DuplicateQueueEntryError(MedReminderError):
    """A queue row already exists for the same medicine, instant and type."""


class AdvancementError(MedReminderError):
    """The next reminder/confirmation pair could not be enqueued."""


class StockReadError(MedReminderError):
    """The pharmacy item's current stock could not be read."""


class StockWriteError(MedReminderError):
    """The pharmacy item's stock could not be written.

    Raised when the store fails or when every compare-and-swap attempt lost
    against a concurrent writer.
    """
