from .errors import install_error_handlers
from .logging import AccessLogMiddleware, install_access_log_middleware
from .request_id import RequestIdMiddleware, install_request_id_middleware

__all__ = [
    "install_error_handlers",
    "AccessLogMiddleware",
    "install_access_log_middleware",
    "RequestIdMiddleware",
    "install_request_id_middleware",
]
