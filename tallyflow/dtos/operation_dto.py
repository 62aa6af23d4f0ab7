# tallyflow/dtos/operation_dto.py

from typing import Any, List, Literal, Optional
from pydantic import BaseModel, Field, field_validator
from tallyflow.core.config import settings


class OperationFlags(BaseModel):
    """
    Flags comunes de las operaciones de escritura:
      - dry_run: calcula y devuelve el preview sin escribir.
      - backup: incluye el formulario previo en la salida.
      - optimistic: relee el formulario y compara ``updatedAt`` antes de escribir.
    """
    dry_run: bool = Field(default_factory=lambda: settings.TALLY_DEFAULT_DRY_RUN)
    backup: bool = Field(default_factory=lambda: settings.TALLY_DEFAULT_BACKUP)
    optimistic: bool = Field(default_factory=lambda: settings.TALLY_DEFAULT_OPTIMISTIC)


class InsertPosition(BaseModel):
    """Dónde insertar bloques nuevos: al final, en un índice o relativo a un UUID."""
    mode: Literal["end", "index", "before", "after"] = "end"
    index: int = 0
    ref_uuid: Optional[str] = None

    @classmethod
    def end(cls) -> "InsertPosition":
        return cls(mode="end")

    @classmethod
    def at_index(cls, index: int) -> "InsertPosition":
        return cls(mode="index", index=index)

    @classmethod
    def before(cls, ref_uuid: str) -> "InsertPosition":
        return cls(mode="before", ref_uuid=ref_uuid)

    @classmethod
    def after(cls, ref_uuid: str) -> "InsertPosition":
        return cls(mode="after", ref_uuid=ref_uuid)


class FieldSelector(BaseModel):
    """Selección de campos objetivo por UUID o por etiqueta."""
    select_by: Literal["uuid", "label"] = "uuid"
    uuids: List[str] = Field(default_factory=list)
    labels: List[str] = Field(default_factory=list)

    @classmethod
    def by_uuid(cls, *uuids: str) -> "FieldSelector":
        return cls(select_by="uuid", uuids=[u for u in uuids if u])

    @classmethod
    def by_label(cls, *labels: str) -> "FieldSelector":
        return cls(select_by="label", labels=[l for l in labels if l])


class FieldSpec(BaseModel):
    """Definición de un campo nuevo para ``add_field``."""
    field_type: str = Field(..., description="FieldKind (input, email, select, ..., custom)")
    label: str = ""
    custom_type: Optional[str] = None
    title: str = ""
    placeholder: str = ""
    required: bool = False
    options: List[str] = Field(default_factory=list)
    payload: dict = Field(default_factory=dict)

    @field_validator("options", mode="before")
    @classmethod
    def _options_as_text(cls, value: Any) -> Any:
        # optionsJson puede traer números o booleanos: ["1", "2"] es lo que Tally guarda
        if isinstance(value, list):
            return [str(v) for v in value if v is not None]
        return value
