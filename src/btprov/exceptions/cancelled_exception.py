from btprov.exceptions.btprov_exception import BtprovException


class OperationCancelledException(BtprovException):

    def __init__(self, message: str = None):
        super().__init__(message or "context canceled")


class DeadlineExceededException(OperationCancelledException):

    def __init__(self, message: str = None):
        super().__init__(message or "context deadline exceeded")
