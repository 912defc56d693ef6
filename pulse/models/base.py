"""
Shared pydantic base for output schemas.

Python code uses snake_case attributes; ``model_dump(by_alias=True)`` yields
the camelCase field names external dashboards key off (``entityId``,
``retentionRate``, ``deviationPct``...).
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class SchemaModel(BaseModel):
    """Base model with camelCase serialization aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_dashboard(self) -> dict:
        """JSON-ready dict using the stable dashboard field names."""
        return self.model_dump(mode="json", by_alias=True)
