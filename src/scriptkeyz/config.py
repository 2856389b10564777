import os

from dataclasses import dataclass
from typing import Mapping, Optional

from .dispatcher import ADDRESSING_MODES, AUTO

# sub-millisecond to low-millisecond keeps timers responsive while idle
DEFAULT_POLL_TIMEOUT            = 0.001


def default_config_dir(environ: Mapping[str, str]) -> str:
    home = environ.get("HOME") or "/root"
    # running under sudo, the scripts still belong to the invoking user
    if home == "/root" and environ.get("SUDO_USER"):
        home = f"/home/{environ['SUDO_USER']}"
    return os.path.join(home, ".config", "scriptkeyz")


@dataclass
class Settings:
    config_dir: Optional[str]       = None
    scripts_dir: Optional[str]      = None
    addressing: str                 = AUTO
    poll_timeout: float             = DEFAULT_POLL_TIMEOUT
    step_budget: Optional[int]      = None
    watch: bool                     = False
    verbose: bool                   = False

    def __post_init__(self):
        if self.addressing not in ADDRESSING_MODES:
            raise ValueError(f"Unknown addressing mode '{self.addressing}', "
                             f"expected one of {ADDRESSING_MODES}")
        if self.poll_timeout < 0:
            raise ValueError("poll_timeout must not be negative")
        if self.step_budget is not None and self.step_budget <= 0:
            raise ValueError("step_budget must be a positive number of steps")

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "Settings":
        """
        SCRIPTKEYZ_CONFIG names the config directory (default
        ~/.config/scriptkeyz), SCRIPTKEYZ_SCRIPTS the scripts directory
        (default <config>/scripts). Keyword overrides win, None means
        "not given".
        """
        if environ is None:
            environ = os.environ
        config_dir = environ.get("SCRIPTKEYZ_CONFIG") or default_config_dir(environ)
        scripts_dir = environ.get("SCRIPTKEYZ_SCRIPTS") or os.path.join(config_dir, "scripts")
        values = dict(config_dir=config_dir, scripts_dir=scripts_dir)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
