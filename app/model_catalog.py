from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, model_validator


class ModelSpec(BaseModel):
    id: str
    name: str = ""
    type: Literal["text", "image"] = "text"

    @model_validator(mode="after")
    def default_name(self):
        if not self.name:
            self.name = self.id
        return self


class ModelCatalog:
    """Selectable models, keyed by id. Loaded once from YAML."""

    def __init__(self, models: List[ModelSpec]):
        self._models: Dict[str, ModelSpec] = {}
        for m in models:
            if m.id in self._models:
                raise ValueError(f"Duplicate model id in catalog: {m.id}")
            self._models[m.id] = m

    def get(self, model_id: str) -> Optional[ModelSpec]:
        return self._models.get(model_id)

    def all(self) -> List[ModelSpec]:
        return list(self._models.values())

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)


def load_model_catalog(path: str | Path) -> ModelCatalog:
    catalog_file = Path(path)
    if not catalog_file.exists():
        raise FileNotFoundError(f"Model catalog not found: {catalog_file}")

    with open(catalog_file, encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    entries = data.get("models", []) if isinstance(data, dict) else data
    return ModelCatalog([ModelSpec(**entry) for entry in entries])
