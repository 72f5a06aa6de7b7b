"""Launch-command security validation for stdio MCP servers.

Every stdio server command passes through `validate_command` before a process
is spawned. Two modes exist:

* ``RUNTIME`` blocks categorically dangerous executables, flags, and code
  patterns without requiring any pre-approval. It applies to every launch.
* ``WHITELIST`` additionally requires npx/uvx packages to be on a curated
  allow-list. It is used for implicitly untrusted origins such as deep links.

Validation is pure: the verdict depends only on ``(command, args, mode)``.
A rejection raises `ValidationRejected` naming the offending token.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from enum import StrEnum

from mcphost.core.logger import get_logger
from mcphost.mcp.errors import ValidationRejected

logger = get_logger(__name__)


class ValidationMode(StrEnum):
    """Strictness applied to a launch command."""

    RUNTIME = "runtime"
    WHITELIST = "whitelist"


OFFICIAL_MCP_PACKAGES: frozenset[str] = frozenset(
    {
        "@modelcontextprotocol/server-memory",
        "@modelcontextprotocol/server-filesystem",
        "@modelcontextprotocol/server-sqlite",
        "@modelcontextprotocol/server-postgres",
        "@modelcontextprotocol/server-brave-search",
        "@modelcontextprotocol/server-fetch",
        "@modelcontextprotocol/server-github",
        "@modelcontextprotocol/server-google-maps",
        "@modelcontextprotocol/server-puppeteer",
        "@modelcontextprotocol/server-slack",
        "@modelcontextprotocol/server-everything",
    }
)
TRUSTED_NPM_SCOPE = "@modelcontextprotocol/"

OFFICIAL_PYTHON_MCP_PACKAGES: frozenset[str] = frozenset(
    {
        "mcp-server-git",
        "mcp-server-time",
        "mcp-server-fetch",
        "mcp-server-filesystem",
        "mcp-server-memory",
        "mcp-server-sequential-thinking",
    }
)

BLOCKED_COMMANDS: frozenset[str] = frozenset(
    {
        # shells
        "bash", "sh", "zsh", "fish", "csh", "tcsh", "ksh",
        # network transfer
        "curl", "wget", "nc", "netcat", "telnet", "ftp", "sftp",
        # destructive filesystem tools
        "rm", "dd", "mkfs", "fdisk", "mount", "umount",
        # process and system control
        "kill", "killall", "pkill", "shutdown", "reboot", "halt",
        # execution wrappers and privilege escalation
        "eval", "exec", "sudo", "su", "doas",
        # native toolchain
        "gcc", "g++", "cc", "ld", "as",
    }
)  # fmt: skip

SAFE_NPX_FLAGS: frozenset[str] = frozenset({"-y", "--yes", "-q", "--quiet", "-v", "--version"})
BLOCKED_NPX_FLAGS: tuple[str, ...] = ("-e", "--eval", "-c", "--call", "--shell-auto-fallback")

UVX_FLAGS_WITH_VALUE: tuple[str, ...] = (
    "--from",
    "--with",
    "--python",
    "-p",
    "--index-url",
    "--extra-index-url",
)
UVX_STANDALONE_FLAGS: frozenset[str] = frozenset(
    {"-y", "--yes", "-q", "--quiet", "-v", "--verbose"}
)

BLOCKED_PYTHON_FLAGS: tuple[str, ...] = ("-c", "--command")
BLOCKED_PYTHON_CODE_PATTERNS: tuple[str, ...] = ("eval(", "exec(", "__import__(")
BLOCKED_PYTHON_MODULES: frozenset[str] = frozenset(
    {"pip", "pip3", "easy_install", "ensurepip", "venv", "site"}
)
PYTHON_COMMANDS: frozenset[str] = frozenset({"python", "python3", "python2"})
PYTHON_SCRIPT_SUFFIXES: tuple[str, ...] = (".py", ".pyz")

BLOCKED_UV_SUBCOMMANDS: tuple[str, ...] = (
    "pip install",
    "pip uninstall",
    "tool install",
    "tool uninstall",
    "cache clear",
    "self update",
)
SAFE_UV_SUBCOMMANDS: tuple[str, ...] = ("run", "tool run")

BLOCKED_NODE_FLAGS: tuple[str, ...] = (
    "-e",
    "--eval",
    "-p",
    "--print",
    "--inspect",
    "--inspect-brk",
    "--require",
    "-r",
)
NODE_COMMANDS: frozenset[str] = frozenset({"node", "nodejs"})
NODE_SCRIPT_SUFFIXES: tuple[str, ...] = (".js", ".mjs", ".cjs")

KNOWN_LAUNCHERS: frozenset[str] = frozenset({"npx", "uv", "uvx"} | PYTHON_COMMANDS | NODE_COMMANDS)

NPM_PACKAGE_RE = re.compile(r"^(@[a-z0-9-~][a-z0-9-._~]*/)?[a-z0-9-~][a-z0-9-._~]*$")
PYTHON_PACKAGE_RE = re.compile(r"^[a-z0-9]([a-z0-9-_]*[a-z0-9])?$", re.IGNORECASE)


def base_command(command: str) -> str:
    """Return the executable name without directories or a Windows `.exe` suffix.

    The result is lower-cased: case-insensitive filesystems resolve `BASH` to bash.
    """
    name = command.strip().replace("\\", "/").rsplit("/", 1)[-1].lower()
    if name.endswith(".exe"):
        name = name[: -len(".exe")]
    return name


def split_command(command: str, args: Sequence[str] = ()) -> tuple[str, list[str]]:
    """Normalize the legacy `"npx <package>"` form into executable plus args.

    Only commands whose first token is a known launcher or a blocked command are
    split, so executable paths containing spaces are left intact.
    """
    stripped = command.strip()
    tokens = stripped.split()
    if len(tokens) > 1:
        head = base_command(tokens[0])
        if head in KNOWN_LAUNCHERS or head in BLOCKED_COMMANDS:
            return tokens[0], [*tokens[1:], *args]
    return stripped, list(args)


def validate_command(
    command: str,
    args: Sequence[str] = (),
    mode: ValidationMode = ValidationMode.RUNTIME,
) -> None:
    """Raise `ValidationRejected` unless `(command, args)` is safe to spawn."""
    executable, arguments = split_command(command, args)
    if not executable:
        raise ValidationRejected("Command must not be empty.", token="")
    base = base_command(executable)

    if base in BLOCKED_COMMANDS:
        logger.error("Blocked dangerous system command (%s): %s", mode.value, base)
        msg = (
            f'Command "{base}" is blocked for security reasons. '
            "This command can be used for malicious purposes and poses a security risk."
        )
        raise ValidationRejected(msg, token=base)

    if base == "npx":
        _validate_npx(arguments, mode)
    elif base == "uvx":
        _validate_uvx(arguments, mode)
    elif base == "uv":
        _validate_uv(arguments)
    elif base in PYTHON_COMMANDS:
        _validate_python(arguments)
    elif base in NODE_COMMANDS:
        _validate_node(arguments)
    else:
        logger.warning(
            "Custom executable %r allowed; ensure it is a trusted MCP server binary", base
        )
        return
    logger.debug("%s validation passed for %s (%d args)", mode.value, base, len(arguments))


def validate_runtime_security(command: str, args: Sequence[str] = ()) -> None:
    """Validation applied to every launch, regardless of origin."""
    validate_command(command, args, ValidationMode.RUNTIME)


def validate_whitelisted_command(command: str, args: Sequence[str] = ()) -> None:
    """Validation for implicitly untrusted origins such as deep links."""
    validate_command(command, args, ValidationMode.WHITELIST)


def extract_npx_package(args: Sequence[str]) -> tuple[str, list[str]]:
    """Split npx args into the package name and the arguments after it."""
    for index, arg in enumerate(args):
        if arg in SAFE_NPX_FLAGS:
            continue
        return arg, list(args[index + 1 :])
    raise ValidationRejected("npx command requires a package name.", token="npx")


def extract_uvx_package(args: Sequence[str]) -> tuple[str, list[str]]:
    """Split uvx args into the package name and the arguments after it.

    Flags that take a value (`--from`, `--python`, ...) are skipped together
    with their value.
    """
    index = 0
    while index < len(args):
        arg = args[index]
        valued = next(
            (flag for flag in UVX_FLAGS_WITH_VALUE if arg == flag or arg.startswith(f"{flag}=")),
            None,
        )
        if valued is not None:
            index += 1 if "=" in arg else 2
            continue
        if arg in UVX_STANDALONE_FLAGS or arg.startswith("-"):
            index += 1
            continue
        return arg, list(args[index + 1 :])
    raise ValidationRejected("uvx command requires a package name.", token="uvx")


def _matches_flag(arg: str, flags: Sequence[str]) -> str | None:
    for flag in flags:
        if arg == flag or arg.startswith(f"{flag}="):
            return flag
    return None


def _validate_npx(args: list[str], mode: ValidationMode) -> None:
    package, _ = extract_npx_package(args)
    for arg in args:
        flag = _matches_flag(arg, BLOCKED_NPX_FLAGS)
        if flag is not None:
            logger.error("Blocked dangerous npx flag %s in %r", flag, arg)
            msg = (
                f'Dangerous npx flag "{flag}" is not allowed. '
                "This flag can execute arbitrary code and poses a security risk."
            )
            raise ValidationRejected(msg, token=flag)

    if mode is ValidationMode.WHITELIST:
        if not NPM_PACKAGE_RE.match(package):
            msg = (
                f'Invalid package name format: "{package}". '
                "Package names must follow npm naming conventions."
            )
            raise ValidationRejected(msg, token=package)
        if package not in OFFICIAL_MCP_PACKAGES and not package.startswith(TRUSTED_NPM_SCOPE):
            logger.warning("Package %s is not whitelisted", package)
            msg = (
                f'Package "{package}" is not whitelisted. Only verified MCP packages can be '
                "installed via deep links. Add it manually if you trust it."
            )
            raise ValidationRejected(msg, token=package)


def _python_danger(args: Sequence[str]) -> str | None:
    """Return the first code-execution flag or pattern found in `args`."""
    for arg in args:
        flag = _matches_flag(arg, BLOCKED_PYTHON_FLAGS)
        if flag is not None:
            return flag
        for pattern in BLOCKED_PYTHON_CODE_PATTERNS:
            if pattern in arg:
                return pattern
    return None


def _reject_python_danger(args: Sequence[str], context: str) -> None:
    danger = _python_danger(args)
    if danger is not None:
        logger.error("Blocked dangerous Python pattern %s in %s arguments", danger, context)
        msg = (
            f'Dangerous Python pattern "{danger}" detected in {context} arguments. '
            "This can execute arbitrary code and poses a security risk."
        )
        raise ValidationRejected(msg, token=danger)


def _validate_uvx(args: list[str], mode: ValidationMode) -> None:
    if mode is ValidationMode.WHITELIST:
        package, _ = extract_uvx_package(args)
        if not PYTHON_PACKAGE_RE.match(package):
            msg = (
                f'Invalid Python package name format: "{package}". '
                "Package names must follow PyPI naming conventions."
            )
            raise ValidationRejected(msg, token=package)
        if package not in OFFICIAL_PYTHON_MCP_PACKAGES:
            logger.warning("Python package %s is not whitelisted", package)
            msg = (
                f'Package "{package}" is not whitelisted. Only verified MCP packages can be '
                "installed via deep links. Add it manually if you trust it."
            )
            raise ValidationRejected(msg, token=package)
    _reject_python_danger(args, "uvx")


def _validate_uv(args: list[str]) -> None:
    if not args:
        msg = "uv command requires a subcommand (e.g. run, tool run)."
        raise ValidationRejected(msg, token="uv")

    subcommand = args[0]
    full_subcommand = " ".join(args[:2])
    for blocked in BLOCKED_UV_SUBCOMMANDS:
        if full_subcommand.startswith(blocked):
            logger.error("Blocked dangerous uv subcommand %s", blocked)
            msg = (
                f'uv subcommand "{blocked}" is blocked for security reasons. '
                "It can modify the system or install packages persistently."
            )
            raise ValidationRejected(msg, token=blocked)

    safe = full_subcommand in SAFE_UV_SUBCOMMANDS or subcommand in SAFE_UV_SUBCOMMANDS
    if not safe:
        if "install" in subcommand or "uninstall" in subcommand:
            msg = (
                f'uv subcommand "{subcommand}" appears to be a package management '
                "operation and is blocked."
            )
            raise ValidationRejected(msg, token=subcommand)
        logger.warning("Unknown uv subcommand %r allowed", subcommand)
        return

    run_args = args[2:] if subcommand == "tool" else args[1:]
    _reject_python_danger(run_args, "uv run")


def _validate_python(args: list[str]) -> None:
    if not args:
        msg = (
            "Python command requires arguments (module or script file). "
            "Direct code execution is not allowed."
        )
        raise ValidationRejected(msg, token="python")

    _reject_python_danger(args, "python")

    index = 0
    while index < len(args):
        arg = args[index]
        if arg == "--module":
            _check_python_module(_option_value(args, index, ""))
            return
        if arg.startswith("--"):
            index += 1
            continue
        if arg.startswith("-") and arg != "-":
            option = _python_short_option(arg)
            if option is None:
                index += 1
                continue
            letter, inline = option
            if letter == "c":
                raise ValidationRejected(
                    f'Dangerous Python flag "{arg}" is not allowed. '
                    "Direct code execution poses a security risk.",
                    token=arg,
                )
            if letter == "m":
                _check_python_module(_option_value(args, index, inline))
                return
            index += 1 if inline else 2
            continue
        if arg.endswith(PYTHON_SCRIPT_SUFFIXES):
            logger.debug("Python script execution allowed: %s", arg)
            return
        break

    msg = (
        "Python command must specify either a .py/.pyz script file or use -m for module "
        "execution. Direct code execution is not allowed for security reasons."
    )
    raise ValidationRejected(msg, token=args[index] if index < len(args) else args[-1])


def _python_short_option(arg: str) -> tuple[str, str] | None:
    """Find the first value-taking option in a `-XYZ` cluster.

    Returns the option letter and whatever follows it inside the same token.
    """
    for position, letter in enumerate(arg[1:], start=1):
        if letter in "cmWX":
            return letter, arg[position + 1 :]
        if not letter.isalpha():
            return None
    return None


def _option_value(args: Sequence[str], index: int, inline: str) -> str:
    if inline:
        return inline
    if index + 1 >= len(args):
        raise ValidationRejected("Python -m flag requires a module name.", token=args[index])
    return args[index + 1]


def _check_python_module(module: str) -> None:
    root = module.split(".", 1)[0].strip()
    if root in BLOCKED_PYTHON_MODULES:
        logger.error("Blocked dangerous Python module %s", module)
        msg = (
            f'Python module "{root}" is blocked for security reasons. '
            "This module can install packages or modify the Python environment."
        )
        raise ValidationRejected(msg, token=root)


def _validate_node(args: list[str]) -> None:
    for arg in args:
        flag = _matches_flag(arg, BLOCKED_NODE_FLAGS)
        if flag is not None:
            logger.error("Blocked dangerous Node.js flag %s in %r", flag, arg)
            msg = (
                f'Dangerous Node.js flag "{flag}" is not allowed. '
                "This flag can execute arbitrary code and poses a security risk."
            )
            raise ValidationRejected(msg, token=flag)

    if not args:
        msg = "Node command requires a script file path. Direct code execution is not allowed."
        raise ValidationRejected(msg, token="node")

    for arg in args:
        if arg.startswith("-") and arg != "-":
            cluster = arg[1:]
            if not arg.startswith("--") and cluster.isalpha() and any(c in cluster for c in "epr"):
                raise ValidationRejected(
                    f'Dangerous Node.js flag "{arg}" is not allowed.', token=arg
                )
            continue
        if arg.endswith(NODE_SCRIPT_SUFFIXES):
            logger.debug("Node.js script execution allowed: %s", arg)
            return
        msg = (
            f'Node command must specify a .js/.mjs/.cjs script file, got "{arg}". '
            "Direct code execution is not allowed for security reasons."
        )
        raise ValidationRejected(msg, token=arg)

    msg = "Node command must specify a .js/.mjs/.cjs script file."
    raise ValidationRejected(msg, token="node")
