"""YAML edit plans for batch edits from the command line.

A plan replays the edits an operator would make in the console, in order:

    steps:
      - action: move
        item: 3xQ9kP
        to: 0
      - action: remove
        item: Lm2ZtA
      - action: replace
        item: 8dW1rB
        file: pages/03.png
      - action: append
        file: pages/07.png

Relative file paths resolve against the plan file's directory.
"""

import logging
import mimetypes
from pathlib import Path
from typing import Any, Literal, Self

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from toonshelf.collection.models import PendingPayload
from toonshelf.collection.working import WorkingCollection
from toonshelf.core.exceptions import ToonshelfError

logger = logging.getLogger(__name__)

__all__ = ["EditStep", "EditPlan", "PlanError", "load_plan", "apply_plan"]


class PlanError(ToonshelfError):
    """Edit plan unreadable, invalid, or not applicable to the collection."""


class EditStep(BaseModel):
    """One edit of a plan."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    action: Literal["move", "remove", "replace", "append"]
    item: str | None = None
    to: int | None = Field(default=None, ge=0)
    file: Path | None = None
    content_type: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_fields(self) -> Self:
        """Each action needs its own operands."""
        if self.action in ("move", "remove", "replace") and not self.item:
            raise ValueError(f"'{self.action}' needs 'item'")
        if self.action == "move" and self.to is None:
            raise ValueError("'move' needs 'to'")
        if self.action in ("replace", "append") and self.file is None:
            raise ValueError(f"'{self.action}' needs 'file'")
        return self


class EditPlan(BaseModel):
    """Ordered list of edits."""

    model_config = ConfigDict(frozen=True)

    steps: list[EditStep] = Field(default_factory=list)
    base_dir: Path = Path(".")


def load_plan(path: Path) -> EditPlan:
    """Read and validate a plan file.

    Raises:
        PlanError: If the file is missing, not YAML, or invalid.

    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise PlanError(f"Cannot read plan {path}: {e}") from e
    except yaml.YAMLError as e:
        raise PlanError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise PlanError(f"Plan root must be a mapping: {path}")
    data.setdefault("base_dir", path.parent)
    try:
        return EditPlan.model_validate(data)
    except ValidationError as e:
        raise PlanError(f"Invalid plan {path}: {e}") from e


def _read_payload(plan: EditPlan, step: EditStep) -> PendingPayload:
    assert step.file is not None
    path = step.file if step.file.is_absolute() else plan.base_dir / step.file
    try:
        data = path.read_bytes()
    except OSError as e:
        raise PlanError(f"Cannot read {path}: {e}") from e
    content_type = step.content_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return PendingPayload(data=data, content_type=content_type, filename=path.name)


def apply_plan(plan: EditPlan, working: WorkingCollection) -> None:
    """Replay a plan's steps onto a working collection.

    Raises:
        PlanError: If a step names an item the collection does not hold.

    """
    for number, step in enumerate(plan.steps, start=1):
        try:
            if step.action == "move":
                assert step.item is not None and step.to is not None
                working.move(step.item, step.to)
            elif step.action == "remove":
                assert step.item is not None
                working.remove(step.item)
            elif step.action == "replace":
                assert step.item is not None
                working.replace_content(step.item, _read_payload(plan, step))
            else:
                working.append(_read_payload(plan, step), **step.attributes)
        except (KeyError, ValueError) as e:
            raise PlanError(f"Step {number} ({step.action}) failed: {e}") from e
        logger.debug("Applied step %d: %s", number, step.action)
