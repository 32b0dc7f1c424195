# btprov - Bluetooth LE provisioning for headless Linux devices
#
# An installer app connects over BLE, writes Wi-Fi and cloud credentials into
# GATT characteristics, and the device joins Wi-Fi through NetworkManager.
#
# Packages:
#   - ble: characteristic store, GATT peripheral, pairing automaton, credential wait
#   - network: NetworkManager client and the Wi-Fi provisioning orchestrator
#   - common: logging, configuration, systemd helpers, cancellation context
#   - exceptions: the btprov exception hierarchy
