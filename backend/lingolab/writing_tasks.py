from __future__ import annotations
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class FormField(BaseModel):
	field_type: str = "text"
	field_label: Optional[str] = None
	field_name: Optional[str] = None
	expected_answer_type: Optional[str] = None
	prefilled_value: Optional[str] = None


class SimpleWritingTask(BaseModel):
	kind: Literal["simple"] = "simple"
	instruction: str
	level: str = "A1"
	image_url: Optional[str] = None


class FormWritingTask(BaseModel):
	kind: Literal["form"] = "form"
	form_title: Optional[str] = None
	form_fields: List[FormField] = Field(default_factory=list)
	scenario: Optional[str] = None
	instructions: Optional[str] = None
	additional_info: Optional[str] = None
	provided_info: Dict[str, str] = Field(default_factory=dict)
	level: str = "A1"


WritingTaskPayload = Annotated[Union[SimpleWritingTask, FormWritingTask], Field(discriminator="kind")]

_payload_adapter: TypeAdapter = TypeAdapter(WritingTaskPayload)


def parse_writing_task(data: Dict) -> Union[SimpleWritingTask, FormWritingTask]:
	return _payload_adapter.validate_python(data)


def to_instruction(task: Union[SimpleWritingTask, FormWritingTask]) -> str:
	"""Render a task as the instruction text shown to the learner and the grader."""
	if isinstance(task, SimpleWritingTask):
		return task.instruction.strip()

	parts: List[str] = []
	if task.scenario:
		parts.append(task.scenario + "\n\n")
	if task.instructions:
		parts.append(task.instructions + "\n\n")
	if task.form_fields:
		parts.append("Bitte geben Sie folgende Informationen an:\n")
		for field in task.form_fields:
			name = field.field_label or field.field_name or ""
			expected = f" ({field.expected_answer_type})" if field.expected_answer_type else ""
			parts.append(f"- {name}{expected}\n")
	if task.additional_info:
		parts.append("\n" + task.additional_info)
	if task.provided_info:
		parts.append("\n\nGegebene Informationen:\n")
		for key, value in task.provided_info.items():
			parts.append(f"- {key}: {value}\n")
	return "".join(parts).strip()
