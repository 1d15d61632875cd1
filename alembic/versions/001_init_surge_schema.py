from alembic import op
import sqlalchemy as sa

revision = "0001_init_surge_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return (
        sa.Column("createdAt", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updatedAt", sa.DateTime(timezone=True), nullable=False),
    )


def _acl_bucket(name: str) -> None:
    op.create_table(
        name,
        sa.Column("key", sa.String(255), primary_key=True),
        sa.Column("value", sa.Text, nullable=False),
        *_timestamps(),
    )


def upgrade():
    op.create_table(
        "client",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(255), nullable=False, unique=True),
        sa.Column("nickname", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(32), nullable=False, server_default="contributor"),
        sa.Column("emailVerified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("settings", sa.JSON, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "tag",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("hierarchyPath", sa.Text, nullable=True),
        sa.Column("redirectToId", sa.Integer, nullable=True),
        sa.Column("parentId", sa.Integer, nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="visible"),
        *_timestamps(),
    )

    op.create_table(
        "news",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("url", sa.Text, nullable=True),
        sa.Column("source", sa.Text, nullable=False, server_default=""),
        sa.Column("title", sa.Text, nullable=False, server_default=""),
        sa.Column("abstract", sa.Text, nullable=True),
        sa.Column("time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("comment", sa.Text, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "event",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("pinyin", sa.String(255), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("needContributor", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("ownerId", sa.Integer, sa.ForeignKey("client.id"), nullable=True, index=True),
        sa.Column("parentId", sa.Integer, sa.ForeignKey("event.id"), nullable=True),
        sa.Column("latestAdmittedNewsId", sa.Integer, sa.ForeignKey("news.id"), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "stack",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.Text, nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("order", sa.Integer, nullable=False, server_default="-1"),
        sa.Column("time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("eventId", sa.Integer, sa.ForeignKey("event.id"), nullable=False, index=True),
        sa.Column("stackEventId", sa.Integer, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "eventStackNews",
        sa.Column("eventId", sa.Integer, sa.ForeignKey("event.id"), primary_key=True),
        sa.Column("stackId", sa.Integer, sa.ForeignKey("stack.id"), primary_key=True),
        sa.Column("newsId", sa.Integer, sa.ForeignKey("news.id"), primary_key=True),
        *_timestamps(),
    )

    op.create_table(
        "eventTag",
        sa.Column("eventId", sa.Integer, sa.ForeignKey("event.id"), primary_key=True),
        sa.Column("tagId", sa.Integer, sa.ForeignKey("tag.id"), primary_key=True),
        *_timestamps(),
    )

    op.create_table(
        "headerImage",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("imageUrl", sa.Text, nullable=False),
        sa.Column("source", sa.Text, nullable=False, server_default=""),
        sa.Column("sourceUrl", sa.Text, nullable=True),
        sa.Column("eventId", sa.Integer, sa.ForeignKey("event.id"), nullable=False, index=True),
        *_timestamps(),
    )

    op.create_table(
        "commit",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("summary", sa.Text, nullable=True),
        sa.Column("data", sa.JSON, nullable=False),
        sa.Column("isForkCommit", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("time", sa.Time, nullable=True),
        sa.Column("authorId", sa.Integer, sa.ForeignKey("client.id"), nullable=True),
        sa.Column("eventId", sa.Integer, sa.ForeignKey("event.id"), nullable=False, index=True),
        *_timestamps(),
    )

    for bucket in ("acl_users", "acl_roles", "acl_allows", "acl_parents"):
        _acl_bucket(bucket)


def downgrade():
    for bucket in ("acl_parents", "acl_allows", "acl_roles", "acl_users"):
        op.drop_table(bucket)
    op.drop_table("commit")
    op.drop_table("headerImage")
    op.drop_table("eventTag")
    op.drop_table("eventStackNews")
    op.drop_table("stack")
    op.drop_table("event")
    op.drop_table("news")
    op.drop_table("tag")
    op.drop_table("client")
