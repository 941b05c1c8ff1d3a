"""
Request and response schemas for the blog API.

Requests are validated here before they reach handler logic; responses are
built from ORM objects and dumped with camelCase keys.
"""

from datetime import datetime
from typing import Annotated, ClassVar, List, Optional

import pydantic
from pydantic import BaseModel, BeforeValidator, Field

from errors import ValidationError


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def _blank_to_none(value):
    value = _strip(value)
    if value == '':
        return None
    return value


def _empty_to_none(value):
    # passwords are kept exactly as typed
    return None if value == '' else value


def parse_tags(value):
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(',')
    elif not isinstance(value, list):
        raise ValueError('tags must be a string or a list')
    return [str(tag).strip() for tag in value if str(tag).strip()]


def _optional_tags(value):
    if _blank_to_none(value) is None:
        return None
    return parse_tags(value)


Text = Annotated[str, BeforeValidator(_strip)]
OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
OptionalSecret = Annotated[Optional[str], BeforeValidator(_empty_to_none)]
Username = Annotated[Optional[Annotated[str, Field(max_length=50)]], BeforeValidator(_blank_to_none)]
Email = Annotated[Optional[Annotated[str, Field(max_length=120)]], BeforeValidator(_blank_to_none)]
Tags = Annotated[List[str], BeforeValidator(parse_tags)]
OptionalTags = Annotated[Optional[List[str]], BeforeValidator(_optional_tags)]


class RequestSchema(BaseModel):
    error_message: ClassVar[str] = 'Invalid request'

    @classmethod
    def parse(cls, data):
        try:
            return cls.model_validate(dict(data or {}))
        except pydantic.ValidationError as exc:
            raise ValidationError(cls.error_message) from exc


class RegisterRequest(RequestSchema):
    error_message: ClassVar[str] = 'Please provide all required fields'

    username: Text = Field(min_length=1, max_length=50)
    email: Text = Field(min_length=1, max_length=120)
    password: str = Field(min_length=1)


class LoginRequest(RequestSchema):
    error_message: ClassVar[str] = 'Please provide email and password'

    email: Text = Field(min_length=1)
    password: str = Field(min_length=1)


class ProfileUpdateRequest(RequestSchema):
    username: Username = None
    email: Email = None
    bio: OptionalText = None
    password: OptionalSecret = None


class PostCreateRequest(RequestSchema):
    error_message: ClassVar[str] = 'Title and content are required'

    title: Text = Field(min_length=1, max_length=200)
    content: Text = Field(min_length=1)
    tags: Tags = Field(default_factory=list)


class PostUpdateRequest(RequestSchema):
    title: OptionalText = None
    content: OptionalText = None
    tags: OptionalTags = None


class CommentRequest(RequestSchema):
    error_message: ClassVar[str] = 'Comment text is required'

    text: Text = Field(min_length=1)


def _page_number(value):
    try:
        page = int(value)
    except (TypeError, ValueError):
        return 1
    return page if page > 0 else 1


class PostListQuery(RequestSchema):
    page: Annotated[int, BeforeValidator(_page_number)] = 1
    keyword: OptionalText = None


# Responses

class AuthorOut(BaseModel):
    id: str
    username: str
    profilePicture: str = ''

    @classmethod
    def from_user(cls, user):
        return cls(id=user.id, username=user.username, profilePicture=user.profile_picture or '')


class UserOut(BaseModel):
    id: str
    username: str
    email: str
    profilePicture: str = ''
    bio: str = ''
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_user(cls, user):
        return cls(id=user.id, username=user.username, email=user.email,
                   profilePicture=user.profile_picture or '', bio=user.bio or '',
                   createdAt=user.created_at, updatedAt=user.updated_at)


class AuthResponse(BaseModel):
    id: str
    username: str
    email: str
    profilePicture: Optional[str] = None
    bio: Optional[str] = None
    token: str

    @classmethod
    def for_user(cls, user, token, profile=True, bio=False):
        fields = dict(id=user.id, username=user.username, email=user.email, token=token)
        if profile:
            fields['profilePicture'] = user.profile_picture or ''
        if bio:
            fields['bio'] = user.bio or ''
        return cls(**fields)


class CommentOut(BaseModel):
    id: str
    text: str
    user: Optional[AuthorOut] = None
    createdAt: Optional[datetime] = None

    @classmethod
    def from_comment(cls, comment):
        user = AuthorOut.from_user(comment.user) if comment.user else None
        return cls(id=comment.id, text=comment.text, user=user, createdAt=comment.created_at)


class PostOut(BaseModel):
    id: str
    title: str
    content: str
    author: Optional[AuthorOut] = None
    tags: List[str] = Field(default_factory=list)
    image: str = ''
    comments: List[CommentOut] = Field(default_factory=list)
    likes: List[str] = Field(default_factory=list)
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_post(cls, post):
        author = AuthorOut.from_user(post.author) if post.author else None
        return cls(id=post.id, title=post.title, content=post.content, author=author,
                   tags=list(post.tags or []), image=post.image or '',
                   comments=[CommentOut.from_comment(c) for c in post.comments],
                   likes=post.liked_by(), createdAt=post.created_at, updatedAt=post.updated_at)


class PostPage(BaseModel):
    posts: List[PostOut]
    page: int
    pages: int
    total: int


class DeleteResponse(BaseModel):
    message: str
    postId: str


def dump(model):
    return model.model_dump(mode='json', exclude_none=True)


def dump_list(models):
    return [dump(m) for m in models]
