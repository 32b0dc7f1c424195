class BtprovException(Exception):
    """Base class for every error raised by btprov."""

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)
