# Routes for handling requests
from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth import auth_required, current_user, issue_token
from errors import NotFound, Unauthorized, ValidationError, NOT_OWNER
from models import db, User, Post, Comment
from schemas import (
    AuthResponse, CommentOut, CommentRequest, DeleteResponse, LoginRequest,
    PostCreateRequest, PostListQuery, PostOut, PostPage, PostUpdateRequest,
    ProfileUpdateRequest, RegisterRequest, UserOut, dump, dump_list,
)
from uploads import POSTS_DIR, PROFILES_DIR

# Create blueprints for different route categories
users_bp = Blueprint('users', __name__)
posts_bp = Blueprint('posts', __name__)


def request_data():
    """Body fields from JSON or, for multipart/urlencoded requests, the form."""
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def uploaded_file(field):
    file = request.files.get(field)
    if file is None or not file.filename:
        return None
    return file


def image_store():
    return current_app.extensions['image_store']


def commit(stored_url=None):
    """Commit the session; drop a just-written upload if the commit fails."""
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        if stored_url:
            image_store().discard(stored_url)
        raise


def get_post_or_404(post_id):
    post = db.session.get(Post, post_id)
    if post is None:
        raise NotFound('Post not found')
    return post


def require_owner(post, action):
    user = current_user()
    if not post.is_owned_by(user):
        current_app.logger.warning('User %s tried to %s post %s owned by %s',
                                   user.id, action, post.id, post.author_id)
        raise Unauthorized(f'Not authorized to {action} this post', error=NOT_OWNER)


def escape_like(value):
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


# User endpoints

@users_bp.route('/register', methods=['POST'])
def register():
    """User Registration Endpoint"""
    data = RegisterRequest.parse(request_data())

    existing = User.query.filter(
        or_(User.email == data.email, User.username == data.username)).first()
    if existing:
        if existing.email == data.email:
            raise ValidationError('Email already registered', error='email')
        raise ValidationError('Username already taken', error='username')

    user = User(username=data.username, email=data.email)
    user.set_password(data.password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError('Username or email already exists')

    current_app.logger.info('User registered: %s', user.id)
    token = issue_token(user.id)
    return jsonify(dump(AuthResponse.for_user(user, token, profile=False))), 201


@users_bp.route('/login', methods=['POST'])
def login():
    """User Login Endpoint"""
    data = LoginRequest.parse(request_data())

    user = User.query.filter_by(email=data.email).first()
    # same answer for unknown email and wrong password
    if user is None or not user.check_password(data.password):
        current_app.logger.info('Failed login attempt')
        raise Unauthorized('Invalid email or password')

    current_app.logger.info('User logged in: %s', user.id)
    return jsonify(dump(AuthResponse.for_user(user, issue_token(user.id)))), 200


@users_bp.route('/profile', methods=['PUT'])
@auth_required
def update_profile():
    """Update current user's profile"""
    user = db.session.get(User, current_user().id)
    if user is None:
        raise NotFound('User not found')

    data = ProfileUpdateRequest.parse(request_data())

    if data.username and data.username != user.username:
        taken = User.query.filter(User.username == data.username, User.id != user.id).first()
        if taken:
            raise ValidationError('Username already taken', error='username')
        user.username = data.username

    if data.email and data.email != user.email:
        taken = User.query.filter(User.email == data.email, User.id != user.id).first()
        if taken:
            raise ValidationError('Email already registered', error='email')
        user.email = data.email

    if data.bio:
        user.bio = data.bio
    if data.password:
        user.set_password(data.password)

    stored_url = None
    picture = uploaded_file('profilePicture')
    if picture is not None:
        stored_url = image_store().ingest(picture, PROFILES_DIR, 'user')
        user.profile_picture = stored_url

    commit(stored_url)
    return jsonify(dump(AuthResponse.for_user(user, issue_token(user.id), bio=True))), 200


@users_bp.route('/profile/<user_id>', methods=['GET'])
def get_profile(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound('User not found')
    return jsonify(dump(UserOut.from_user(user))), 200


# Post endpoints

@posts_bp.route('', methods=['POST'])
@auth_required
def create_post():
    data = PostCreateRequest.parse(request_data())

    image_url = ''
    image = uploaded_file('image')
    if image is not None:
        image_url = image_store().ingest(image, POSTS_DIR, 'post')

    post = Post(title=data.title, content=data.content, author_id=current_user().id,
                tags=data.tags, image=image_url)
    db.session.add(post)
    commit(image_url)

    current_app.logger.info('Post created: %s', post.id)
    return jsonify(dump(PostOut.from_post(post))), 201


@posts_bp.route('', methods=['GET'])
def list_posts():
    """Newest first, ten per page, optionally filtered by keyword."""
    query = PostListQuery.parse(request.args.to_dict())

    stmt = select(Post).order_by(Post.created_at.desc(), Post.id.desc())
    if query.keyword:
        pattern = f'%{escape_like(query.keyword)}%'
        stmt = stmt.where(or_(Post.title.ilike(pattern, escape='\\'),
                              Post.content.ilike(pattern, escape='\\')))

    page = db.paginate(stmt, page=query.page, per_page=current_app.config['POSTS_PER_PAGE'],
                       error_out=False)
    result = PostPage(posts=[PostOut.from_post(p) for p in page.items],
                      page=query.page, pages=page.pages, total=page.total)
    return jsonify(dump(result)), 200


@posts_bp.route('/<post_id>', methods=['GET'])
def get_post(post_id):
    post = get_post_or_404(post_id)
    return jsonify(dump(PostOut.from_post(post))), 200


@posts_bp.route('/<post_id>', methods=['PUT'])
@auth_required
def update_post(post_id):
    post = get_post_or_404(post_id)
    require_owner(post, 'update')

    data = PostUpdateRequest.parse(request_data())
    if data.title:
        post.title = data.title
    if data.content:
        post.content = data.content
    if data.tags is not None:
        post.tags = data.tags

    stored_url = None
    image = uploaded_file('image')
    if image is not None:
        stored_url = image_store().ingest(image, POSTS_DIR, 'post')
        post.image = stored_url

    commit(stored_url)
    return jsonify(dump(PostOut.from_post(post))), 200


@posts_bp.route('/<post_id>', methods=['DELETE'])
@auth_required
def delete_post(post_id):
    post = get_post_or_404(post_id)
    require_owner(post, 'delete')

    db.session.delete(post)
    commit()

    current_app.logger.info('Post deleted: %s', post_id)
    return jsonify(dump(DeleteResponse(message='Post deleted successfully', postId=post_id))), 200


@posts_bp.route('/<post_id>/comments', methods=['POST'])
@auth_required
def add_comment(post_id):
    post = get_post_or_404(post_id)
    data = CommentRequest.parse(request_data())

    post.comments.append(Comment(text=data.text, user_id=current_user().id))
    commit()

    return jsonify(dump_list(CommentOut.from_comment(c) for c in post.comments)), 201


@posts_bp.route('/<post_id>/like', methods=['PATCH'])
@auth_required
def toggle_like(post_id):
    post = get_post_or_404(post_id)
    liked = post.toggle_like(current_user())
    commit()

    current_app.logger.debug('Post %s %s by %s', post_id, 'liked' if liked else 'unliked',
                             current_user().id)
    return jsonify(post.liked_by()), 200
