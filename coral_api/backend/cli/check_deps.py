#!/usr/bin/env python3
"""Dependency doctor: reports which runtime packages are importable.

Exit code 0 when everything is present, 1 otherwise. Also available as
``coral-api doctor``.
"""

from __future__ import annotations

import importlib
import sys
from dataclasses import dataclass
from importlib import metadata

from rich.console import Console
from rich.table import Table


@dataclass(frozen=True)
class Requirement:
    module: str
    distribution: str
    used_for: str


REQUIREMENTS: tuple[Requirement, ...] = (
    Requirement("numpy", "numpy", "matrix model"),
    Requirement("scipy", "scipy", "meta-analysis"),
    Requirement("pandas", "pandas", "datasets"),
    Requirement("statsmodels", "statsmodels", "logistic GLMs"),
    Requirement("matplotlib", "matplotlib", "figures"),
    Requirement("seaborn", "seaborn", "figures"),
    Requirement("yaml", "pyyaml", "configuration"),
    Requirement("rich", "rich", "console output"),
    Requirement("click", "click", "command line"),
    Requirement("fastapi", "fastapi", "REST API"),
    Requirement("uvicorn", "uvicorn", "REST API"),
    Requirement("pydantic", "pydantic", "response models"),
    Requirement("slowapi", "slowapi", "rate limiting"),
    Requirement("httpx", "httpx", "API client"),
)


def installed_version(req: Requirement) -> str | None:
    """Distribution version when ``req.module`` imports, else ``None``."""
    try:
        module = importlib.import_module(req.module)
    except ImportError:
        return None
    try:
        return metadata.version(req.distribution)
    except metadata.PackageNotFoundError:
        return getattr(module, "__version__", "?")


def missing_packages() -> list[str]:
    return [req.distribution for req in REQUIREMENTS if installed_version(req) is None]


def main(console: Console | None = None) -> int:
    console = console or Console()
    table = Table(title="Runtime dependencies")
    table.add_column("Package", style="cyan")
    table.add_column("Used for")
    table.add_column("Version")

    missing = []
    for req in REQUIREMENTS:
        version = installed_version(req)
        if version is None:
            missing.append(req.distribution)
            table.add_row(req.distribution, req.used_for, "[red]missing[/red]")
        else:
            table.add_row(req.distribution, req.used_for, f"[green]{version}[/green]")
    console.print(table)

    if missing:
        console.print(f"[yellow]Missing: {' '.join(missing)}. Run  pip install -e .  to install them.[/yellow]")
        return 1
    console.print("[green]All dependencies present[/green]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
