class ServiceError(Exception):
    """Base class for exceptions raised by the N4Y backend service."""
    pass

class ConfigurationError(ServiceError):
    """Raised when a component is started without a setting it cannot run without."""
    pass

class AIProcessingError(ServiceError):
    """Raised when the completion provider does not return usable text."""
    def __init__(self, message, status_code=None, body=None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

class ChainError(ServiceError):
    """Raised when an RPC call fails or a transaction reverts."""
    def __init__(self, message, tx_hash=None):
        super().__init__(message)
        self.tx_hash = tx_hash

class CidMissingError(ServiceError):
    """Raised when a pinning response carries none of the known CID fields."""
    pass
