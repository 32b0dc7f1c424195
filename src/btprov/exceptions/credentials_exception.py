from typing import List

from btprov.exceptions.btprov_exception import BtprovException


class CredentialsException(BtprovException):
    """
    One or more credential fields could not be read.

    Every failed field contributes an entry to ``errors`` so that all four
    outcomes are visible at once. ``credentials`` holds whatever was read;
    it is not usable for provisioning.
    """

    def __init__(self, errors: List[Exception], credentials=None):
        self.errors = list(errors)
        self.credentials = credentials
        details = '; '.join(str(e) for e in self.errors)
        super().__init__(f"failed to read credentials: {details}")
