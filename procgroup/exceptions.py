"""Custom exception hierarchy for procgroup."""


class ProcGroupError(Exception):
    """Base for all process group errors."""


class ConfigurationError(ProcGroupError):
    """Invalid limit, option, callback or signal name."""


class StateError(ProcGroupError):
    """Operation not valid in the current group or submitter state."""


class DeliveryError(ProcGroupError):
    """A signal could not be delivered to the process group."""
