from .material import MaterialDefinition, MaterialTable

__all__ = [
    "MaterialDefinition",
    "MaterialTable",
]
