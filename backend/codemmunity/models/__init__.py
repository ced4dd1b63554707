"""ORM table mappings. Importing this package registers every table on Base."""

from codemmunity.models.comment import COMMENT_MAX_LENGTH, CommentRow
from codemmunity.models.post import BODY_MAX_LENGTH, TITLE_MAX_LENGTH, PostRow
from codemmunity.models.user import USER_ID_LENGTH, UserRow

__all__ = [
    "BODY_MAX_LENGTH",
    "COMMENT_MAX_LENGTH",
    "CommentRow",
    "PostRow",
    "TITLE_MAX_LENGTH",
    "USER_ID_LENGTH",
    "UserRow",
]
