"""HTTP request layer."""

from jobpulse.http.invoker import HttpInvoker, InvokeResult, RequestInvoker

__all__ = [
    "HttpInvoker",
    "InvokeResult",
    "RequestInvoker",
]
