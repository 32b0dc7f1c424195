# btprov - Networking
#
#   - models.py: network devices and access points as seen by NetworkManager
#   - network_manager.py: the NetworkManager D-Bus client
#   - provisioning_manager.py: joins the Wi-Fi network named in the credentials
