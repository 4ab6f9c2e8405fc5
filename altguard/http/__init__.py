"""HTTP boundary for verification submissions."""

from .app import VerifyRequest, VerifyResponse, client_address, create_app

__all__ = ["create_app", "client_address", "VerifyRequest", "VerifyResponse"]
