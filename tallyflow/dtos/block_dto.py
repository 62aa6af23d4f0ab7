# tallyflow/dtos/block_dto.py

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class TallyBlock(BaseModel):
    """
    Bloque de un formulario Tally. Registro abierto: las claves desconocidas
    se conservan tal cual al volver a serializar.
    """
    uuid: str = Field(..., description="UUID único del bloque dentro del formulario")
    type: Optional[str] = None
    label: Optional[str] = None
    groupUuid: Optional[str] = None
    groupType: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="allow")


class TallyForm(BaseModel):
    """Formulario Tally; ``updatedAt`` es el token de concurrencia optimista."""
    id: Optional[str] = None
    name: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None
    blocks: List[TallyBlock] = Field(..., description="Bloques en orden de renderizado")
    updatedAt: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    def blocks_as_dicts(self) -> List[Dict[str, Any]]:
        return [b.model_dump(exclude_unset=True) for b in self.blocks]


class TallySelectOption(BaseModel):
    label: str
    value: str

    model_config = ConfigDict(extra="allow")


class OptionsDelta(BaseModel):
    added: int = Field(..., ge=0)
    removed: int = Field(..., ge=0)
    beforeCount: int = Field(..., ge=0)
    afterCount: int = Field(..., ge=0)


class BlockChangeDetails(BaseModel):
    payload: Optional[bool] = None
    meta: Optional[bool] = None
    optionsDelta: Optional[OptionsDelta] = None
    payloadPaths: Optional[List[str]] = None


class BlockChange(BaseModel):
    """Entrada del diff estructural entre dos listas de bloques"""
    uuid: str
    type: Optional[str] = None
    label: Optional[str] = None
    change: Literal["added", "removed", "updated"]
    details: Optional[BlockChangeDetails] = None

    def to_output(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
