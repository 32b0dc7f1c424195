from btprov.exceptions.btprov_exception import BtprovException


class AdapterUnavailableException(BtprovException):
    """The Bluetooth adapter could not be found or powered on."""


class AdvertisementUnavailableException(BtprovException):

    def __init__(self, message: str = None):
        super().__init__(message or "advertisement is unavailable")


class AdvertisingStateException(BtprovException):
    """Start was requested while active, or stop while inactive."""


class PairingException(BtprovException):
    """The pairing agent could not be registered or a device could not be trusted."""
