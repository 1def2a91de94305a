"""Export JSON schemas for the API models shared with the frontend."""

import json
from pathlib import Path

from rechtstreeks.models import AssembledDocument, CaseView, Section, SectionSnapshotEvent, SummonsView


def main() -> None:
    """Export schemas to docs/schemas/."""
    schemas_dir = Path("docs/schemas")
    schemas_dir.mkdir(parents=True, exist_ok=True)

    for model in (CaseView, Section, SummonsView, AssembledDocument, SectionSnapshotEvent):
        schema_path = schemas_dir / f"{model.__name__}.schema.json"
        with open(schema_path, "w") as f:
            json.dump(model.model_json_schema(), f, indent=2)
        print(f"Exported {model.__name__} schema to {schema_path}")


if __name__ == "__main__":
    main()
