"""
Print subsystem error taxonomy.

Only RenderingFailure ever reaches the caller of the orchestrator. The
others are raised inside drivers and turned into failed results that
trigger the next fallback tier.
"""


class PrintError(Exception):
    """Base class for all print subsystem errors."""


class ConfigurationMissing(PrintError):
    """No active printer of the needed kind is configured."""


class DeliveryTimeout(PrintError):
    """An endpoint did not answer within the per-attempt bound."""


class DeliveryRejected(PrintError):
    """An endpoint answered but refused the payload."""


class BridgeNotConnected(PrintError):
    """The local print bridge could not be reached."""


class RenderingFailure(PrintError):
    """The order data is malformed and no document can be built."""
