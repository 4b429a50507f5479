"""Shared pydantic base for wire-facing schemas.

The firmware and the dashboard speak camelCase JSON; Python code keeps
snake_case attribute names.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
	model_config = ConfigDict(
		alias_generator=to_camel,
		populate_by_name=True,
		from_attributes=True,
	)

	def to_wire(self) -> dict[str, Any]:
		return self.model_dump(mode="json", by_alias=True)
