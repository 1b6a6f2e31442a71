class GatewayError(Exception):
    """A third-party gateway call failed; carries the HTTP status the API should answer with."""

    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
