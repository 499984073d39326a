"""procgroup — run many child processes in one process group, cooperatively."""

from importlib.metadata import version, PackageNotFoundError

from procgroup.exceptions import (
    ConfigurationError,
    DeliveryError,
    ProcGroupError,
    StateError,
)
from procgroup.group import Group, wait
from procgroup.submitter import Submitter, SubmitterExit, suspend

try:
    __version__ = version("procgroup")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development

__all__ = [
    "ConfigurationError",
    "DeliveryError",
    "Group",
    "ProcGroupError",
    "StateError",
    "Submitter",
    "SubmitterExit",
    "suspend",
    "wait",
]
