"""
Output contract validation.

Checks that a worker output claims the schema id its task declares and,
when a JSON Schema is registered for that id, that the payload has the
declared shape. The content itself stays opaque to the engine.
"""

from collections.abc import Mapping
from typing import Any

import jsonschema
from jsonschema.exceptions import best_match

from phasegate.domain.exceptions import ContractViolation
from phasegate.domain.interfaces import ContractValidatorInterface
from phasegate.domain.models import TaskSpec, WorkerOutput


class JsonSchemaContractValidator(ContractValidatorInterface):
    """Shape check backed by jsonschema."""

    def __init__(self, schemas: Mapping[str, dict[str, Any]] | None = None):
        """
        Args:
            schemas: Output schema id -> JSON Schema. Ids without an entry
                only get the schema id and mapping checks.
        """
        self._validators = {
            schema_id: jsonschema.Draft202012Validator(schema)
            for schema_id, schema in (schemas or {}).items()
        }

    def validate(self, task: TaskSpec, output: WorkerOutput) -> None:
        if output.schema_id != task.output_schema:
            raise ContractViolation(
                f"task '{task.task_id}' declared '{task.output_schema}' "
                f"but produced '{output.schema_id}'"
            )
        if not isinstance(output.payload, dict):
            raise ContractViolation(
                f"task '{task.task_id}' produced a {type(output.payload).__name__}, "
                "expected a JSON object"
            )

        validator = self._validators.get(output.schema_id)
        if validator is None:
            return
        error = best_match(validator.iter_errors(output.payload))
        if error is not None:
            path = "/".join(str(p) for p in error.absolute_path) or "<root>"
            raise ContractViolation(
                f"task '{task.task_id}' output violates '{output.schema_id}' "
                f"at {path}: {error.message}"
            )
