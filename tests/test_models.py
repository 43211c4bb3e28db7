"""Mapping checks for the ORM models in chorus_membership.models.

These verify table names, composite primary keys, the JSON column naming
(metadata vs metadata_) and the partial unique index on join requests.
"""

from chorus_membership import models


def test_table_names():
    """Model classes expose expected __tablename__ values."""
    assert models.Community.__tablename__ == "community"
    assert models.CommunitySettings.__tablename__ == "community_settings"
    assert models.Membership.__tablename__ == "community_member"
    assert models.ModeratorCapabilityGrant.__tablename__ == "moderator_permission"
    assert models.JoinRequest.__tablename__ == "community_join_request"
    assert models.Ban.__tablename__ == "banned_user"
    assert models.PostModerationRecord.__tablename__ == "post_moderation"
    assert models.ModerationLogEntry.__tablename__ == "moderation_log"
    assert models.CommunityRule.__tablename__ == "community_rule"


def test_composite_primary_keys():
    """Pair-keyed tables use (community_id, user_id)."""
    for model in (models.Membership, models.ModeratorCapabilityGrant, models.Ban):
        assert {c.name for c in model.__table__.primary_key} == {"community_id", "user_id"}


def test_metadata_column_and_attribute():
    """The log's JSON column is named 'metadata' but mapped as `metadata_`."""
    table = models.ModerationLogEntry.__table__
    assert "metadata" in table.c
    assert hasattr(models.ModerationLogEntry, "metadata_")


def test_pending_join_request_index_is_partial():
    index = next(
        ix for ix in models.JoinRequest.__table__.indexes if ix.name == "uq_join_request_pending"
    )
    assert index.unique
    assert [c.name for c in index.columns] == ["community_id", "user_id"]
    assert str(index.dialect_options["sqlite"]["where"]) == "status = 'pending'"
