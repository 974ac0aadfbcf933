"""
HTTP middleware: request id and timing in structured logs, CORS for the browser UI.
"""

from app.middleware.cors import CORSMiddleware
from app.middleware.request_context import RequestContextMiddleware

__all__ = ["CORSMiddleware", "RequestContextMiddleware"]
