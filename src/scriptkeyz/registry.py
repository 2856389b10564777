import ast
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from .errors import LoadError
from .lib.logger import debug, error, info


@dataclass(frozen=True)
class ScriptDefinition:
    name: str
    path: str
    source: str                 = field(repr=False)
    # compiled once at load; tasks run this, never the source
    code: object                = field(repr=False, compare=False)


def compile_script(name, source, path="<string>"):
    return compile(
        source,
        path,
        "exec",
        flags=ast.PyCF_ALLOW_TOP_LEVEL_AWAIT,
        dont_inherit=True,
    )


class ScriptRegistry:
    """
    Name -> compiled script mapping.

    Reloading a name replaces the entry. Tasks already created from the
    previous definition keep running it.
    """

    def __init__(self,
                 on_loaded: Optional[Callable[[str], None]] = None,
                 on_error: Optional[Callable[[str], None]] = None):
        self._scripts: Dict[str, ScriptDefinition] = {}
        self._on_loaded = on_loaded
        self._on_error = on_error

    def __contains__(self, name):
        return name in self._scripts

    def __len__(self):
        return len(self._scripts)

    def names(self):
        return list(self._scripts)

    def get(self, name) -> Optional[ScriptDefinition]:
        return self._scripts.get(name)

    def load(self, name, path) -> ScriptDefinition:
        try:
            with open(path, "r", encoding="utf-8") as f:
                source = f.read()
        except (OSError, UnicodeDecodeError) as err:
            self._fail(LoadError(name, path, err))
        return self.load_source(name, source, str(path))

    def load_source(self, name, source, path="<string>") -> ScriptDefinition:
        if not name:
            self._fail(LoadError(name, path, ValueError("script name is empty")))
        try:
            code = compile_script(name, source, path)
        except (SyntaxError, ValueError) as err:
            self._fail(LoadError(name, path, err))

        definition = ScriptDefinition(name=name, path=path, source=source, code=code)
        replaced = name in self._scripts
        self._scripts[name] = definition
        info(f"Script {'reloaded' if replaced else 'loaded'}: {name} ({path})", ctx="+S")
        if self._on_loaded:
            self._on_loaded(name)
        return definition

    def unload(self, name) -> bool:
        if self._scripts.pop(name, None) is None:
            return False
        info(f"Script unloaded: {name}", ctx="-S")
        return True

    def _fail(self, err: LoadError):
        error(str(err))
        debug(f"    from {err.path}")
        if self._on_error:
            self._on_error(str(err))
        raise err
