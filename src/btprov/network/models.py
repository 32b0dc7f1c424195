"""
NetworkManager devices and access points.

Plain values handed from the D-Bus client to the provisioning manager.
"""

from dataclasses import dataclass

NM_WIRELESS_INTERFACE = 'org.freedesktop.NetworkManager.Device.Wireless'

# NMDeviceType values we care about
NM_DEVICE_TYPE_ETHERNET = 1
NM_DEVICE_TYPE_WIFI = 2

# NM80211ApFlags
NM_802_11_AP_FLAGS_PRIVACY = 0x1

DEVICE_KINDS = {
    NM_DEVICE_TYPE_ETHERNET: 'ethernet',
    NM_DEVICE_TYPE_WIFI: 'wifi',
}


@dataclass(frozen=True)
class NetworkDevice:
    path: str
    interface: str
    device_type: int

    @property
    def kind(self) -> str:
        return DEVICE_KINDS.get(self.device_type, 'other')

    @property
    def is_wireless(self) -> bool:
        """True if the device exposes the wireless capability set (scans, access points)."""
        return self.device_type == NM_DEVICE_TYPE_WIFI


@dataclass(frozen=True)
class AccessPoint:
    """
    A scanned access point.

    strength is NetworkManager's signal quality in percent (0-100).
    """
    path: str
    ssid: str
    strength: int
    flags: int = 0
    wpa_flags: int = 0
    rsn_flags: int = 0

    @property
    def requires_psk(self) -> bool:
        return bool(self.flags & NM_802_11_AP_FLAGS_PRIVACY or self.wpa_flags or self.rsn_flags)
