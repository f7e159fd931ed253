"""
structure-table: a structure-driven table engine.

Main API:
- render_table(): load a structure, assemble its rows and build the render plan
- add_fields(): merge a table/field selection into a stored structure
- validate(): check every structure of a main tab
"""

# Define version first to avoid circular imports
__version__ = "0.3.0"

from .api import (
    add_fields,
    open_backend,
    open_store,
    render_table,
    validate,
    TableResult,
)
from .backend import Backend, FileBackend, MemoryBackend
from .config import EngineSettings, load_settings
from .model import Field, FieldKey, Section, Structure, Subsection
from .projection import RenderPlan, project
from .rows import Row, assemble, completion_percentage
from .store import StructureStore, filter_by_active_tab
from .validate import ValidationReport, ValidationFinding, ValidationSummary

__all__ = [
    "__version__",
    # Main API functions
    "render_table",
    "add_fields",
    "validate",
    "open_backend",
    "open_store",
    # Result types
    "TableResult",
    "RenderPlan",
    "Row",
    "ValidationReport",
    "ValidationFinding",
    "ValidationSummary",
    # Model
    "Structure",
    "Section",
    "Subsection",
    "Field",
    "FieldKey",
    # Engine pieces
    "StructureStore",
    "Backend",
    "MemoryBackend",
    "FileBackend",
    "EngineSettings",
    "load_settings",
    "project",
    "assemble",
    "completion_percentage",
    "filter_by_active_tab",
]
