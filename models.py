# Database models
import uuid
from datetime import datetime, timezone
from flask_bcrypt import Bcrypt
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
bcrypt = Bcrypt()


def _new_id():
    return uuid.uuid4().hex


def _utcnow():
    return datetime.now(timezone.utc)


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    username = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    profile_picture = db.Column(db.String(255), nullable=False, default='')
    bio = db.Column(db.Text, nullable=False, default='')
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f'<User {self.username}>'


class Post(db.Model):
    __tablename__ = 'posts'
    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    author_id = db.Column(db.String(32), db.ForeignKey('users.id'), nullable=False)
    tags = db.Column(db.JSON, nullable=False, default=list)
    image = db.Column(db.String(255), nullable=False, default='')
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    author = db.relationship('User')
    comments = db.relationship('Comment', back_populates='post', order_by='Comment.seq',
                               cascade='all, delete-orphan')
    likes = db.relationship('Like', order_by='Like.seq', cascade='all, delete-orphan')

    def is_owned_by(self, user):
        return self.author_id == user.id

    def liked_by(self):
        return [like.user_id for like in self.likes]

    def toggle_like(self, user):
        """Add the user's like, or remove it if already present."""
        for like in self.likes:
            if like.user_id == user.id:
                self.likes.remove(like)
                return False
        self.likes.append(Like(user_id=user.id))
        return True

    def __repr__(self):
        return f'<Post {self.id} {self.title!r}>'


class Comment(db.Model):
    __tablename__ = 'comments'
    seq = db.Column(db.Integer, primary_key=True, autoincrement=True)
    id = db.Column(db.String(32), unique=True, nullable=False, default=_new_id)
    post_id = db.Column(db.String(32), db.ForeignKey('posts.id'), nullable=False)
    user_id = db.Column(db.String(32), db.ForeignKey('users.id'), nullable=False)
    text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    post = db.relationship('Post', back_populates='comments')
    user = db.relationship('User')


class Like(db.Model):
    __tablename__ = 'likes'
    __table_args__ = (db.UniqueConstraint('post_id', 'user_id', name='uq_like_post_user'),)
    seq = db.Column(db.Integer, primary_key=True, autoincrement=True)
    post_id = db.Column(db.String(32), db.ForeignKey('posts.id'), nullable=False)
    user_id = db.Column(db.String(32), db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
