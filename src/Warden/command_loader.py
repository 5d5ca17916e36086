# src/Warden/command_loader.py
import importlib
import pkgutil

import Warden.commands as commands_pkg  # package


def load_all_commands() -> None:
    # Sorted so registration order, and with it match priority, is stable
    names = sorted(
        m.name for m in pkgutil.iter_modules(commands_pkg.__path__, commands_pkg.__name__ + ".")
    )
    for name in names:
        importlib.import_module(name)
