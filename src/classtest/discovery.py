"""Import suite modules so their decorators register suites."""

import importlib.util
import logging
import sys
from pathlib import Path
from types import ModuleType


logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "suite_*.py"


def _load_module(path: Path) -> ModuleType:
    """Dynamically load a Python module from path."""
    spec = importlib.util.spec_from_file_location(path.stem, path)
    if spec is None or spec.loader is None:
        msg = f"Cannot load module from {path}"
        raise ImportError(msg)

    module = importlib.util.module_from_spec(spec)
    sys.modules[path.stem] = module
    spec.loader.exec_module(module)
    return module


def load_suites(path: Path | str | None = None, pattern: str = DEFAULT_PATTERN) -> list[ModuleType]:
    """Import every suite module under ``path``.

    Args:
        path: File or directory to search. Defaults to current directory.
        pattern: Glob matched against file names.

    Returns:
        The imported modules, in path order.

    Example:
        load_suites()  # Current directory
        load_suites("suite_checkout.py")  # Specific file
        load_suites("./suites/", pattern="*_suite.py")
    """
    if path is None:
        path = Path.cwd()
    elif isinstance(path, str):
        path = Path(path)

    path = path.resolve()
    if path.is_file():
        files = [path] if path.match(pattern) and path.suffix == ".py" else []
    elif path.is_dir():
        files = sorted(path.rglob(pattern))
    else:
        raise FileNotFoundError(f"No such file or directory: {path}")

    modules = []
    for file_path in files:
        logger.debug("Loading suite module %s", file_path)
        modules.append(_load_module(file_path))
    return modules
