# btprov - Common Utilities
#
# Shared utilities used by the provisioning service and its components.
# Import directly from the specific module, not from this __init__.py.
#
# Example:
#   from btprov.common.context import Context
#   from btprov.common.config import get_device_name
