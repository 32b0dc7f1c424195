# btprov exceptions
#
# Import directly from the specific module, e.g.
#   from btprov.exceptions.credentials_exception import CredentialsException
