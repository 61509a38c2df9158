from .routes import router, get_clock, coinstreak_error_handler, request_validation_handler

__all__ = ["router", "get_clock", "coinstreak_error_handler", "request_validation_handler"]
