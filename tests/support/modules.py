"""Module tree sandbox used across adapter, application and e2e tests.

A sandbox owns four directories below ``tmp_path``: the module units, the
"installed software" roots those modules point at, a per-user config
directory and the generated meta descriptor directory. It also carries a
private environment mapping so nothing touches ``os.environ``.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from lib_environment_modules.core import Session, create_session
from lib_environment_modules.domain.settings import CORE_MODULE_NAME, Settings

BASE_PATH = os.pathsep.join(["/usr/local/bin", "/usr/bin", "/bin"])


@dataclass(slots=True)
class ModuleSandbox:
    root: Path
    modules_dir: Path
    installs_dir: Path
    config_dir: Path
    generated_dir: Path
    env: dict[str, str] = field(default_factory=dict)

    def add_module(self, full_name: str, *, fmt: str = "json", core: bool = True, **document: Any) -> Path:
        """Write ``<modules>/<full_name>/<full_name>.<fmt>`` and return the unit directory."""

        data = dict(document)
        if core:
            data.setdefault("RequiredModules", [CORE_MODULE_NAME])
        unit = self.modules_dir / full_name
        unit.mkdir(parents=True, exist_ok=True)
        target = unit / f"{full_name}.{fmt}"
        if fmt == "json":
            target.write_text(json.dumps(data, indent=2), encoding="utf-8")
        elif fmt in {"yaml", "yml"}:
            target.write_text(yaml.safe_dump(data), encoding="utf-8")
        else:
            raise ValueError(f"unsupported sandbox format {fmt}")
        return unit

    def install(self, name: str, *files: str) -> Path:
        """Create an install root containing empty *files*."""

        directory = self.installs_dir / name
        directory.mkdir(parents=True, exist_ok=True)
        for relative in files:
            target = directory / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text("", encoding="utf-8")
        return directory

    def settings(self, **overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "module_paths": (self.modules_dir,),
            "cache_file": self.config_dir / "module_cache.json",
            "search_path_file": self.config_dir / "search_paths.json",
            "generated_path": self.generated_dir,
        }
        values.update(overrides)
        return Settings(**values)

    def session(self, **overrides: Any) -> Session:
        return create_session(self.settings(**overrides), self.env)

    @property
    def cli_env(self) -> dict[str, str]:
        """Environment for ``CliRunner.invoke`` pointing every location into the sandbox."""

        return {
            "XDG_CONFIG_HOME": str(self.config_dir.parent),
            "APPDATA": str(self.config_dir.parent),
            "ENVIRONMENT_MODULES_PATH": str(self.modules_dir),
            "LIB_ENVIRONMENT_MODULES_GENERATED_PATH": str(self.generated_dir),
            "PATH": self.env.get("PATH", BASE_PATH),
        }


def create_module_sandbox(tmp_path: Path) -> ModuleSandbox:
    """Return a sandbox with empty directories and a minimal ``PATH``."""

    root = tmp_path / "sandbox"
    sandbox = ModuleSandbox(
        root=root,
        modules_dir=root / "modules",
        installs_dir=root / "installs",
        config_dir=root / "config" / "lib-environment-modules",
        generated_dir=root / "generated",
        env={"PATH": BASE_PATH},
    )
    for directory in (sandbox.modules_dir, sandbox.installs_dir, sandbox.config_dir):
        directory.mkdir(parents=True, exist_ok=True)
    return sandbox
