class ProxyError(Exception):
    """Base error for proxy failures, rendered as a structured response"""
    status = 500
    code = "ProxyError"

    def __init__(self, message, url=None):
        super().__init__(message)
        self.message = message
        self.url = url


class MissingParameter(ProxyError):
    status = 400
    code = "MissingParameter"


class InvalidTarget(ProxyError):
    status = 400
    code = "InvalidTarget"


class UpstreamError(ProxyError):
    """Non-2xx answer or network failure from the fetched origin"""
    code = "UpstreamError"

    def __init__(self, message, url=None, upstream_status=None):
        super().__init__(message, url)
        self.upstream_status = upstream_status


class UpstreamTimeout(UpstreamError):
    """Outbound fetch exceeded the time bound; reported as an upstream error"""
