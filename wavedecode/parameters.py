from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, model_validator
from wavedecode.dtos import ConfigurationError


class ParameterValueError(ConfigurationError):
    pass


class ParameterBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    description: Optional[str] = None

    def check(self, value: Any) -> None:
        raise NotImplementedError


class TextParameter(ParameterBase):
    type: Literal["text"] = "text"
    min_length: int = 0
    max_length: int
    default: str = ""

    @model_validator(mode="after")
    def _validate_declaration(self):
        if self.min_length < 0 or self.min_length > self.max_length:
            raise ValueError(f"Invalid length bounds [{self.min_length}, {self.max_length}]")
        self.check(self.default)
        return self

    def check(self, value: Any) -> None:
        if not isinstance(value, str):
            raise ParameterValueError(f"Expected text, got {type(value).__name__}")
        if not self.min_length <= len(value) <= self.max_length:
            raise ParameterValueError(
                f"Text length {len(value)} outside [{self.min_length}, {self.max_length}]"
            )


class NumberParameter(ParameterBase):
    """step is a presentation hint and is not enforced."""
    type: Literal["number"] = "number"
    min: float
    max: float
    step: Optional[float] = None
    default: float

    @model_validator(mode="after")
    def _validate_declaration(self):
        if self.min > self.max:
            raise ValueError(f"min {self.min} > max {self.max}")
        self.check(self.default)
        return self

    def check(self, value: Any) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ParameterValueError(f"Expected a number, got {type(value).__name__}")
        if not self.min <= value <= self.max:
            raise ParameterValueError(f"{value} outside [{self.min}, {self.max}]")


class SelectParameter(ParameterBase):
    type: Literal["select"] = "select"
    options: List[Any]
    default: Any

    @model_validator(mode="after")
    def _validate_declaration(self):
        if not self.options:
            raise ValueError("Select parameter needs at least one option")
        self.check(self.default)
        return self

    def check(self, value: Any) -> None:
        if value not in self.options:
            raise ParameterValueError(f"{value!r} is not one of {self.options}")


class OptionParameter(ParameterBase):
    type: Literal["option"] = "option"
    checked: bool = False
    default: bool = False

    @model_validator(mode="before")
    @classmethod
    def _default_from_checked(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("default") is None:
            data = {**data, "default": data.get("checked", False)}
        return data

    def check(self, value: Any) -> None:
        if not isinstance(value, bool):
            raise ParameterValueError(f"Expected a boolean, got {type(value).__name__}")


Parameter = Union[TextParameter, NumberParameter, SelectParameter, OptionParameter]


def default_values(parameters: Dict[str, Parameter]) -> Dict[str, Any]:
    return {pid: p.default for pid, p in parameters.items()}
