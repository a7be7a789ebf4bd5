from fastapi import status


class ApiError(Exception):
    def __init__(
        self, code: str, message: str, status: int = status.HTTP_400_BAD_REQUEST
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status


class AuthError(ApiError):
    pass


class NotFoundError(ApiError):
    def __init__(self, message: str = "Not found", code: str = "not_found"):
        super().__init__(code=code, message=message, status=status.HTTP_404_NOT_FOUND)


class ForbiddenError(ApiError):
    def __init__(self, message: str = "Access denied", code: str = "forbidden"):
        super().__init__(code=code, message=message, status=status.HTTP_403_FORBIDDEN)


class ConflictError(ApiError):
    def __init__(self, message: str, code: str = "conflict"):
        super().__init__(code=code, message=message, status=status.HTTP_409_CONFLICT)


class ValidationError(ApiError):
    def __init__(self, message: str, code: str = "validation_error"):
        super().__init__(
            code=code, message=message, status=status.HTTP_400_BAD_REQUEST
        )
