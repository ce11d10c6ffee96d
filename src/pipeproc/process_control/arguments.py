"""
Argument and environment marshalling

Turns a command, its argument list and an environment mapping into the flat
forms handed to the OS process-creation call.
"""

from typing import Dict, Iterable, List, Mapping, Optional

from ..utils.error_handler import InvalidArgumentError


def _check_nul(value: str, what: str) -> str:
    if '\0' in value:
        raise InvalidArgumentError(f"{what} contains a NUL character: {value!r}")
    return value


def build_argv(command: str, arguments: Optional[Iterable[str]] = None) -> List[str]:
    """Build the argument vector, argv[0] being the command itself"""
    if not command:
        raise InvalidArgumentError("Command cannot be empty")
    
    argv = [_check_nul(str(command), "Command")]
    for arg in arguments or ():
        argv.append(_check_nul(str(arg), "Argument"))
    return argv


def format_env_entry(name: str, value: str) -> str:
    """Format one environment entry as 'name=value'"""
    name = str(name)
    value = str(value)
    if not name:
        raise ValueError("Environment variable name cannot be empty")
    if '=' in name:
        raise ValueError(f"Environment variable name contains '=': {name!r}")
    if '\0' in name or '\0' in value:
        raise ValueError(f"Environment variable {name!r} contains a NUL character")
    return f"{name}={value}"


def build_environment(environment: Mapping[str, str]) -> Dict[str, str]:
    """Build the validated environment handed to the child"""
    env = {}
    for name, value in environment.items():
        try:
            entry = format_env_entry(name, value)
        except ValueError as e:
            raise InvalidArgumentError(str(e)) from e
        key, _, val = entry.partition('=')
        env[key] = val
    return env
