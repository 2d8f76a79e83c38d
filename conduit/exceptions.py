"""
Domain errors raised by the service layer.

Each error carries the HTTP status it maps to and a RealWorld-style error
body (``{"errors": {field: [messages]}}``).  The handlers registered in
``conduit.main`` turn them into JSON responses, so services never import
FastAPI.
"""


class ConduitError(Exception):
    status_code: int = 400

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(errors)
        self.errors = errors

    @property
    def body(self) -> dict:
        return {"errors": self.errors}


class ValidationError(ConduitError):
    """A request field is blank, malformed, or collides with stored data."""

    status_code = 422

    @classmethod
    def blank(cls, *fields: str) -> "ValidationError":
        return cls({field: ["can't be blank"] for field in fields})


class NotFoundError(ConduitError):
    status_code = 404

    def __init__(self, resource: str) -> None:
        super().__init__({resource: ["not found"]})
        self.resource = resource


class AuthenticationError(ConduitError):
    status_code = 401

    def __init__(self, message: str = "missing authorization credentials") -> None:
        super().__init__({"authorization": [message]})
