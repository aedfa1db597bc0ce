"""Launch script that resolves the cartpilot package before starting Uvicorn."""

from __future__ import annotations

import importlib
import logging
import os
import sys
from pathlib import Path
from typing import Iterable

import uvicorn

logger = logging.getLogger("cartpilot.launcher")


def _candidate_roots() -> Iterable[Path]:
    current_file = Path(__file__).resolve()
    repo_root = current_file.parent.parent
    cwd = Path.cwd()

    seen: set[Path] = set()
    for path in [repo_root, cwd, cwd / "app", Path("/app")]:
        if path not in seen:
            seen.add(path)
            yield path


def _find_package() -> Path | None:
    for root in _candidate_roots():
        package_dir = root / "cartpilot"
        if (package_dir / "main.py").is_file():
            return package_dir
    return None


def main() -> None:
    package_dir = _find_package()
    if package_dir is None:
        logger.error("Unable to locate cartpilot package")
        raise RuntimeError("cartpilot package not found")

    repo_root = str(package_dir.parent)
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)
    logger.debug("Package directory resolved to %s", package_dir)

    app = importlib.import_module("cartpilot.main").app

    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
