"""Utility script to generate project documentation using pdoc."""

from pathlib import Path

import pdoc


def main() -> None:
    """Render API documentation for the ``flowforge`` package into ``docs/``."""

    output_dir = Path("docs")
    output_dir.mkdir(exist_ok=True)
    context = pdoc.Context()
    module = pdoc.Module("flowforge", context=context)
    pdoc.link_inheritance(context)
    _write_module(module, output_dir)


def _write_module(module: "pdoc.Module", output_dir: Path) -> None:
    target = output_dir.joinpath(*module.name.split("."))
    if module.is_package:
        target.mkdir(parents=True, exist_ok=True)
        path = target / "index.html"
    else:
        target.parent.mkdir(parents=True, exist_ok=True)
        path = target.with_suffix(".html")
    path.write_text(module.html(), encoding="utf-8")
    for submodule in module.submodules():
        _write_module(submodule, output_dir)


if __name__ == "__main__":
    main()
