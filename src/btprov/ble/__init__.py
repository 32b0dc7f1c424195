# btprov - Bluetooth LE
#
#   - characteristic.py: mutex-guarded characteristic values and the network list payload
#   - peripheral.py: GATT peripheral service and advertising state machine
#   - pairing.py: auto-trust pairing automaton
#   - manager.py: waits for all credentials and assembles the bundle
#   - bluez.py: the BlueZ D-Bus objects and clients behind the above
