"""
Error taxonomy for the story-playing engine.

Every failure the engine can surface is a StoryPlayError subclass carrying a
user-facing category and a message that is safe to show to a player.
The API layer maps categories onto HTTP status codes.
"""

from typing import Any, Optional


class StoryPlayError(Exception):
    """Base class for all engine failures"""

    category = "internal_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.category, "detail": self.message}


class NotFoundError(StoryPlayError):
    """A story, scene, option or session does not exist"""

    category = "not_found"
    status_code = 404


class InvalidCodeError(StoryPlayError):
    """The access code for a private story did not match"""

    category = "access_denied"
    status_code = 403


class AccessDeniedError(StoryPlayError):
    """The requester does not own the story they tried to manage"""

    category = "access_denied"
    status_code = 403


class DataIntegrityError(StoryPlayError):
    """Story content violates an invariant (options, endings, chain)"""


class MissingContentError(DataIntegrityError):
    """A scene the story must have is absent"""


class InvalidArgument(StoryPlayError, ValueError):
    """A caller supplied an argument outside its domain"""

    category = "invalid_request"
    status_code = 400


class AnswerRequiredError(InvalidArgument):
    """
    An answer was submitted without a selected option.

    Carries the re-rendered scene (same seed, same options) so the caller can
    show the form again without reshuffling it.
    """

    status_code = 422

    def __init__(self, message: str, scene: Optional[Any] = None):
        super().__init__(message)
        self.scene = scene

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.scene is not None:
            payload["scene"] = self.scene.model_dump(mode="json")
        return payload


class PersistenceError(StoryPlayError):
    """A repository write reported failure"""


class InvalidStateError(StoryPlayError):
    """The requested transition is not allowed from the session's state"""

    category = "invalid_state"
    status_code = 409
