"""
Remote command execution over persistent shell sessions.
"""

from .runner import RemoteCommandRunner, RemoteExecutionResult, RunnerState
from .shell import CommandListener, ParamikoShellSession, ShellSession

__all__ = [
    'CommandListener',
    'ShellSession',
    'ParamikoShellSession',
    'RemoteCommandRunner',
    'RemoteExecutionResult',
    'RunnerState',
]
