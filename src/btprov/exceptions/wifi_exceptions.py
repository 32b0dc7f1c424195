from btprov.exceptions.btprov_exception import BtprovException


class WirelessNotEnabledException(BtprovException):
    """NetworkManager never confirmed that wireless is enabled."""


class WirelessDeviceNotFoundException(BtprovException):

    def __init__(self, message: str = None):
        super().__init__(message or "no wifi device found")


class AccessPointNotFoundException(BtprovException):

    def __init__(self, ssid: str):
        self.ssid = ssid
        super().__init__(f"access point not found: {ssid}")


class WiFiProvisioningException(BtprovException):
    """A step of a Wi-Fi connection attempt failed.

    The failing step is kept in ``step`` and the original error is chained
    as ``__cause__``.
    """

    def __init__(self, step: str, cause: Exception):
        self.step = step
        self.cause = cause
        super().__init__(f"failed to {step}: {cause}")
