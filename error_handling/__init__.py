from .errors import (
    PortalError,
    TemplateSyntaxError,
    StatisticsFetchError,
    StoreUnavailableError,
    RpcFailure,
    ConnectionWriteError,
    AdminAuthError
)

__all__ = [
    'PortalError',
    'TemplateSyntaxError',
    'StatisticsFetchError',
    'StoreUnavailableError',
    'RpcFailure',
    'ConnectionWriteError',
    'AdminAuthError'
]
