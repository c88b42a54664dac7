"""Load every request schema through the registry and report what it accepted.

Exits non-zero when a schema fails meta-validation, so CI can gate on it.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from jsonschema.exceptions import SchemaError

from bidwatch.validation.validator import SCHEMA_DIR, SchemaRegistry

logger = logging.getLogger("bidwatch.scripts.validate_schemas")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--schema-dir", type=Path, default=SCHEMA_DIR)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    try:
        registry = SchemaRegistry(args.schema_dir)
    except SchemaError as exc:
        logger.error("invalid schema under %s: %s", args.schema_dir, exc.message)
        return 1
    if not registry.names:
        logger.error("no schemas found under %s", args.schema_dir)
        return 1
    for name in registry.names:
        logger.info("%s: ok", name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
