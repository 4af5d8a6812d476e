"""
Domain exceptions raised by the service layer.
API endpoints translate them into HTTP status codes.
"""


class CatalogError(Exception):
    """Base class for catalog service errors"""
    status_code = 500


class ContentNotFoundError(CatalogError):
    status_code = 404

    def __init__(self, content_id):
        self.content_id = content_id
        super().__init__(f"Content {content_id} not found")


class DuplicateContentError(CatalogError):
    status_code = 409

    def __init__(self, platform, title, year):
        self.platform = platform
        self.title = title
        self.year = year
        super().__init__("Content already exists with same platform, title and year")


class ContentValidationError(CatalogError):
    status_code = 400

    def __init__(self, message, details=None):
        self.details = details or []
        super().__init__(message)


class UserNotFoundError(CatalogError):
    status_code = 404

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class UserInactiveError(CatalogError):
    status_code = 403

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"User {user_id} is deactivated")
