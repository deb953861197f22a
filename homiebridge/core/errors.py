"""Domain-specific errors for homiebridge."""


class HomieBridgeError(Exception):
    """Base error for homiebridge."""


class ConfigLoadError(HomieBridgeError):
    """Raised when reading configuration sources fails."""


class ConfigValidationError(HomieBridgeError):
    """Raised when a configuration file does not conform to schema or semantics."""


class DecodeError(HomieBridgeError):
    """Base error for advertisement payloads that cannot be decoded."""


class UnsupportedEncodingError(DecodeError):
    """Raised when a segment's (length, encoding) pair is not supported."""


class UnknownReadingKindError(DecodeError):
    """Raised when a segment carries an unrecognised reading id."""


class MalformedAdvertisementError(DecodeError):
    """Raised when a payload is truncated or framed incorrectly."""


class InvalidIdentifierError(HomieBridgeError):
    """Raised when a device, node or property id breaks the topic id rule."""


class ValueTypeError(HomieBridgeError):
    """Raised when a value does not fit the datatype of its property."""


class MissingContextError(HomieBridgeError):
    """Raised when an advertisement lacks what is needed to name its device."""


class DeviceError(HomieBridgeError):
    """Base error for registry lookups and lifecycle violations."""


class DeviceExistsError(DeviceError):
    """Raised when bringing up a device id that is already live."""


class DeviceUnavailableError(DeviceError):
    """Raised when a device is unknown or not in the ready state."""


class UnknownNodeError(DeviceError):
    """Raised when a node id does not exist on a device."""


class UnknownPropertyError(DeviceError):
    """Raised when a property id does not exist on a node."""


class BusError(HomieBridgeError):
    """Base message bus error."""


class BusConnectError(BusError):
    """Raised when connecting to the broker fails."""


class BusPublishError(BusError):
    """Raised when a publish is rejected or the connection drops."""


class ScannerError(HomieBridgeError):
    """Raised when the BLE scanning front-end cannot run."""
