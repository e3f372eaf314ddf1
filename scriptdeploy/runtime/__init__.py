from .commands import CommandResult, CommandRunner, run_command  # noqa: F401
from .toolchain import ensure_runtime, install_cli  # noqa: F401
