from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class LocationDTO(BaseModel):
    line_num: int
    column_num: int
    filepath: str = ""


class RangeDTO(BaseModel):
    start: LocationDTO
    end: LocationDTO


class CandidateDTO(BaseModel):
    insertion_text: str
    menu_text: str = ""
    extra_menu_info: str = ""
    detailed_info: str = ""
    kind: str = ""
    extra_data: Dict[str, Any] = {}


class CompletionResponseDTO(BaseModel):
    completions: List[CandidateDTO] = []
    completion_start_column: int = 1
    errors: List[Dict[str, Any]] = []


class DiagnosticDTO(BaseModel):
    kind: str = "ERROR"
    text: str = ""
    location: LocationDTO
    location_extent: Optional[RangeDTO] = None
    ranges: List[RangeDTO] = []
    fixit_available: bool = False


class MessageDTO(BaseModel):
    message: str = ""
    detailed_info: str = ""


class FixItChunkDTO(BaseModel):
    replacement_text: str
    range: RangeDTO


class FixItDTO(BaseModel):
    text: str = ""
    chunks: List[FixItChunkDTO] = []
    location: Optional[LocationDTO] = None


class FixItResponseDTO(BaseModel):
    fixits: List[FixItDTO] = []


class ErrorDTO(BaseModel):
    message: str = ""
    exception: Dict[str, Any] = {}
    traceback: str = ""
