"""Result models returned by the agent for reviews and fixes."""

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from cconv.models.rules import Severity


def _expected(info: ValidationInfo, key: str):
    if info.context is None:
        return None
    return info.context.get(key)


class ReviewResult(BaseModel):
    """A single rule violation reported by the agent.

    When validated with a context carrying ``file``, ``rule_id`` or ``severity``,
    the corresponding fields must match those values exactly.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    file: str = Field(min_length=1, description="Path of the reviewed file, exactly as given")
    line: int = Field(ge=1, description="1-based line number of the violation")
    column: int = Field(ge=1, description="1-based column number of the violation")
    rule_id: str = Field(alias="ruleId", min_length=1, description="Id of the violated rule")
    message: str = Field(min_length=1, description="What is wrong and why")
    severity: Severity = Field(description="Severity of the violated rule")

    @field_validator("file")
    @classmethod
    def _file_matches(cls, value: str, info: ValidationInfo) -> str:
        expected = _expected(info, "file")
        if expected is not None and value != expected:
            raise ValueError(f"file must be {expected!r}, got {value!r}")
        return value

    @field_validator("rule_id")
    @classmethod
    def _rule_matches(cls, value: str, info: ValidationInfo) -> str:
        expected = _expected(info, "rule_id")
        if expected is not None and value != expected:
            raise ValueError(f"ruleId must be {expected!r}, got {value!r}")
        return value

    @field_validator("severity")
    @classmethod
    def _severity_matches(cls, value: Severity, info: ValidationInfo) -> Severity:
        expected = _expected(info, "severity")
        if expected is not None and value != Severity(expected):
            raise ValueError(f"severity must be {Severity(expected).value!r}, got {value.value!r}")
        return value

    def to_dict(self) -> dict:
        """Wire representation with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class FixResult(BaseModel):
    """The agent's proposed fix for one issue."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: bool
    description: str = Field(min_length=5)
    start_line: int = Field(alias="startLine", ge=1)
    end_line: int = Field(alias="endLine", ge=1)
    original_content: str = Field(alias="originalContent")
    fixed_content: str = Field(alias="fixedContent")
    reasoning: str = Field(min_length=10)
    confidence: int = Field(ge=0, le=100)
    applied_change: str = Field(alias="appliedChange")

    @property
    def has_valid_range(self) -> bool:
        return self.end_line >= self.start_line

    def to_dict(self) -> dict:
        """Wire representation with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
