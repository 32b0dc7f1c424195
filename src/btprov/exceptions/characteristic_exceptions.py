from btprov.exceptions.btprov_exception import BtprovException


class CharacteristicNoValueException(BtprovException):
    """Nothing has been written to the characteristic yet.

    This is the expected state until the installer app writes the field, so
    callers poll on it rather than treating it as a failure.
    """

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"No value has been written to BLE characteristic for {field}")


class CharacteristicInactiveException(BtprovException):

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Characteristic {field} is inactive")


class InvalidNetworkException(BtprovException):
    """An AvailableWiFiNetwork failed validation."""


class CharacteristicReadException(BtprovException):
    """A characteristic read failed for a reason other than a missing value."""

    def __init__(self, description: str, cause: Exception):
        self.description = description
        self.cause = cause
        super().__init__(f"failed to read {description}: {cause}")
