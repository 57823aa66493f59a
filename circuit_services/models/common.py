from __future__ import annotations

"""
Shared model pieces: camelCase wire names, circuit-name and proving-system
types, and the ``{success: true, ...}`` envelope every response carries.

Python code uses snake_case attributes; JSON uses camelCase. Requests accept
either spelling.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CIRCUIT_NAME_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"

CircuitName = Annotated[str, Field(pattern=CIRCUIT_NAME_PATTERN, examples=["Multiplier2"])]
ProvingSystemName = Literal["groth16", "plonk", "fflonk"]

# Input assignments: signal name -> scalar or (nested) array of numbers/decimal strings.
Inputs = Dict[str, Any]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Envelope(ApiModel):
    success: bool = True
    message: Optional[str] = None


class ErrorBody(ApiModel):
    """Shape of every error response (for OpenAPI docs)."""

    success: bool = False
    error: str
    code: str
    errors: Optional[List[str]] = None
    formatted_errors: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = Field(default=None, alias="request_id")


__all__ = [
    "CIRCUIT_NAME_PATTERN",
    "CircuitName",
    "ProvingSystemName",
    "Inputs",
    "ApiModel",
    "Envelope",
    "ErrorBody",
]
