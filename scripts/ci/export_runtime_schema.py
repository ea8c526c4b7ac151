#!/usr/bin/env python
"""Write the OpenAPI document the running API would serve, with stable key order."""
import json
import os
import sys
from pathlib import Path


def deep_sort(obj):
    if isinstance(obj, dict):
        return {k: deep_sort(v) for k, v in sorted(obj.items())}
    if isinstance(obj, list):
        return [deep_sort(item) for item in obj]
    return obj


def main():
    if len(sys.argv) != 2:
        print("Usage: export_runtime_schema.py <output_path>")
        sys.exit(2)

    project_root = Path(__file__).resolve().parents[2]
    sys.path.insert(0, str(project_root))

    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "mentormatch_backend.settings_test")

    import django  # pylint: disable=import-outside-toplevel

    django.setup()

    from core.schema import build_schema  # pylint: disable=import-outside-toplevel

    schema = build_schema()
    if not schema:
        print("Runtime schema generation returned empty output.")
        sys.exit(1)

    output_path = Path(sys.argv[1])
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as handle:
        json.dump(deep_sort(schema), handle, indent=2, ensure_ascii=False)
        handle.write("\n")
    print(f"Wrote {len(schema.get('paths', {}))} paths to {output_path}")


if __name__ == "__main__":
    main()
