"""
Tortoise ORM models for the records the compiler reads.

Flows and branches are owned by the marketing backend; the compiler only
looks them up by id, so these models mirror just the columns it needs.
"""

from tortoise import fields, models


class Branch(models.Model):
    """Organisation branch a flow belongs to."""

    id = fields.CharField(primary_key=True, max_length=64)
    organisation_id = fields.CharField(max_length=64, index=True)
    name = fields.CharField(max_length=255)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "branches"

    def __str__(self) -> str:
        return f"Branch<{self.name}>"


class FlowRecord(models.Model):
    """Stored designer flow; ``fe_flow`` holds the nodes and edges."""

    id = fields.CharField(primary_key=True, max_length=64)
    organisation_id = fields.CharField(max_length=64, index=True)
    branch_id = fields.CharField(max_length=64, index=True)
    title = fields.CharField(max_length=255)
    fe_flow = fields.JSONField()
    is_subflow = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "flows"
        ordering = ("-updated_at", "id")

    def __str__(self) -> str:
        return f"FlowRecord<{self.title}>"

    def as_payload(self) -> dict:
        return {
            "_id": self.id,
            "title": self.title,
            "organisation_id": self.organisation_id,
            "branch_id": self.branch_id,
            "fe_flow": self.fe_flow,
        }


__all__ = ["Branch", "FlowRecord"]
