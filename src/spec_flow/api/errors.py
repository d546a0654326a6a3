from __future__ import annotations


class APIError(Exception):
    def __init__(self, message: str, *, status_code: int = 500, code: str = "api_error"):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class SessionNotFound(APIError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found", status_code=404, code="session_not_found")
        self.session_id = session_id
