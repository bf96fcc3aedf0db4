import pytest
import sqlalchemy

from app.models.comment import Comment
from app.models.like import Like
from app.models.post import Post


def test_create_post(db, viewer_user):
    post = Post(author_id=viewer_user.id, content="Hello network")
    db.add(post)
    db.flush()

    assert post.id is not None
    assert post.image_url is None
    assert post.created_at is not None
    assert post.author.username == "viewer"


def test_comment_author(db, viewer_user, other_user):
    post = Post(author_id=viewer_user.id, content="Hello")
    db.add(post)
    db.flush()

    comment = Comment(post_id=post.id, author_id=other_user.id, content="Hi!")
    db.add(comment)
    db.flush()

    assert comment.author.name == "Other User"
    assert comment.created_at is not None


def test_like_unique_per_user(db, viewer_user):
    post = Post(author_id=viewer_user.id, content="Hello")
    db.add(post)
    db.flush()

    db.add(Like(post_id=post.id, user_id=viewer_user.id))
    db.flush()

    db.add(Like(post_id=post.id, user_id=viewer_user.id))

    with pytest.raises(sqlalchemy.exc.IntegrityError):
        db.flush()
