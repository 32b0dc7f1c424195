"""
BlueZ D-Bus names.

Kept free of dbus imports so the pure modules can share them.
"""

BLUEZ_SERVICE_NAME = 'org.bluez'
BLUEZ_ROOT_PATH = '/org/bluez'

ADAPTER_IFACE = 'org.bluez.Adapter1'
DEVICE_IFACE = 'org.bluez.Device1'

# Interface for registering GATT applications (our services/characteristics)
GATT_MANAGER_IFACE = 'org.bluez.GattManager1'
# Interface for registering BLE advertisements (how phones discover us)
LE_ADVERTISING_MANAGER_IFACE = 'org.bluez.LEAdvertisingManager1'

GATT_SERVICE_IFACE = 'org.bluez.GattService1'
GATT_CHRC_IFACE = 'org.bluez.GattCharacteristic1'
LE_ADVERTISEMENT_IFACE = 'org.bluez.LEAdvertisement1'

AGENT_MANAGER_IFACE = 'org.bluez.AgentManager1'
AGENT_IFACE = 'org.bluez.Agent1'

DBUS_OM_IFACE = 'org.freedesktop.DBus.ObjectManager'
DBUS_PROP_IFACE = 'org.freedesktop.DBus.Properties'

# Object paths we export
APPLICATION_PATH = '/org/bluez/btprov'
ADVERTISEMENT_PATH_BASE = '/org/bluez/btprov/advertisement'
SERVICE_PATH_BASE = '/org/bluez/btprov/service'
AGENT_PATH = '/custom/agent'

# No keyboard, no display: BlueZ falls back to "Just Works" pairing
AGENT_CAPABILITY = 'NoInputNoOutput'
